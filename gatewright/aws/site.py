import logging
import mimetypes
from dataclasses import dataclass, field
from pathlib import Path
from typing import final

import pulumi
from pulumi import FileAsset, Output, Resource, ResourceOptions
from pulumi_aws import get_region, s3
from pulumi_aws.apigateway import Authorizer as PulumiAuthorizer
from pulumi_aws.apigateway import (
    Deployment,
    Integration,
    IntegrationResponse,
    Method,
    MethodResponse,
    MethodSettings,
    RestApi,
    Stage,
)
from pulumi_aws.apigateway import Resource as ApiResource
from pulumi_aws.apigateway import Response as GatewayResponse
from pulumi_aws.iam import Role
from pulumi_aws.lambda_ import Permission

from gatewright.aws.deployment import (
    _calculate_deployment_hash,
    _create_deployment,
    _create_method_settings,
    _create_stage,
)
from gatewright.aws.function import (
    FunctionResources,
    _create_authorizer_function,
    _create_function,
)
from gatewright.aws.iam import _create_api_gateway_account, _create_bucket_read_role
from gatewright.binding import ResourceDescription, object_key
from gatewright.compiler import CompiledStack, compile_stack
from gatewright.component import Component, safe_name
from gatewright.config import FolderRoute, StackConfig, _StorageRoute
from gatewright.naming import path_resource_name

logger = logging.getLogger("gatewright.aws.site")

BINARY_MEDIA_TYPES = ["*/*"]
MINIMUM_COMPRESSION_SIZE = 150
AUTHORIZATION_IDENTITY_SOURCE = "method.request.header.Authorization"
MAX_RESOURCE_NAME_LENGTH = 128


@final
@dataclass(frozen=True)
class SiteResources:
    rest_api: RestApi
    deployment: Deployment
    stage: Stage
    bucket: s3.Bucket | None = None
    bucket_read_role: Role | None = None
    files: list[s3.BucketObject] = field(default_factory=list)
    functions: dict[str, FunctionResources] = field(default_factory=dict)
    authorizer: PulumiAuthorizer | None = None
    unauthorized_response: GatewayResponse | None = None
    method_settings: list[MethodSettings] = field(default_factory=list)
    permissions: list[Permission] = field(default_factory=list)


@final
class Site(Component[SiteResources]):
    """REST API serving a list of file, folder and function routes.

    The stack configuration is compiled when the component is created, so every
    configuration error surfaces before any resource is registered.

    Args:
        name: Component name, used as prefix of every Pulumi resource name
        config: Stack configuration
        base_dir: Directory the local file, folder and handler paths are relative to
    """

    _config: StackConfig
    _compiled: CompiledStack
    _base_dir: Path

    def __init__(self, name: str, config: StackConfig, base_dir: Path | str = "."):
        self._config = config
        self._compiled = compile_stack(config)
        self._base_dir = Path(base_dir)
        super().__init__(name)

    @property
    def config(self) -> StackConfig:
        return self._config

    @property
    def compiled(self) -> CompiledStack:
        return self._compiled

    @property
    def _prefix(self) -> str:
        return f"{self.name}-"

    def _create_resources(self) -> SiteResources:
        # 1. rest api
        # 2. bucket with the uploaded files and the role API Gateway reads them with
        # 3. lambda functions and the request authorizer
        # 4. per resource description: resource, method, integration and responses
        # 5. unauthorized gateway response
        # 6. deployment, stage and per-method settings
        compiled = self._compiled
        rest_api = RestApi(
            self._prefix + "rest-api",
            name=compiled.rest_api_name,
            description=compiled.domain_name,
            endpoint_configuration={"types": "REGIONAL"},
            binary_media_types=BINARY_MEDIA_TYPES,
            minimum_compression_size=str(MINIMUM_COMPRESSION_SIZE),
        )

        bucket = bucket_read_role = None
        files = []
        storage_routes = [r for r in self._config.routes if isinstance(r, _StorageRoute)]
        if storage_routes:
            bucket, files = self._create_bucket(storage_routes)
            bucket_read_role = _create_bucket_read_role(self._prefix, bucket)

        functions = {
            spec.name: _create_function(self._prefix, spec, self._base_dir)
            for spec in compiled.functions
        }
        permissions = [
            self._create_invoke_permission(function_name, function_resources, rest_api)
            for function_name, function_resources in functions.items()
        ]

        authorizer = self._create_authorizer(rest_api, permissions)
        if authorizer is not None:
            # Bind the authenticated methods to the created authorizer
            compiled = self._compiled = compile_stack(self._config, authorizer)

        resources: dict[str, ApiResource] = {}
        deployment_dependencies: list[Resource] = []
        for description in compiled.resources:
            deployment_dependencies.extend(
                self._create_method(
                    description,
                    self.get_or_create_resource(description.path, resources, rest_api),
                    rest_api,
                    bucket,
                    bucket_read_role,
                    functions,
                )
            )

        unauthorized_response = None
        if compiled.unauthorized_response is not None:
            unauthorized_response = GatewayResponse(
                self._prefix + "unauthorized-response",
                rest_api_id=rest_api.id,
                response_type="UNAUTHORIZED",
                status_code="401",
                response_parameters=compiled.unauthorized_response.response_parameters,
                response_templates=compiled.unauthorized_response.response_templates,
            )
            deployment_dependencies.append(unauthorized_response)

        deployment = _create_deployment(
            self._prefix,
            rest_api,
            _calculate_deployment_hash(compiled),
            depends_on=deployment_dependencies,
        )

        stage_config = compiled.stage
        stage_dependencies = []
        if stage_config.logging_level != "OFF" or stage_config.access_log_group_name:
            stage_dependencies.append(_create_api_gateway_account(self._prefix))
        stage, _ = _create_stage(
            self._prefix, rest_api, deployment, stage_config, stage_dependencies
        )
        method_settings = _create_method_settings(self._prefix, rest_api, stage, stage_config)

        pulumi.export(f"site_{self.name}_domain_name", compiled.domain_name)
        pulumi.export(f"site_{self.name}_rest_api_id", rest_api.id)
        pulumi.export(f"site_{self.name}_invoke_url", stage.invoke_url)
        if bucket is not None:
            pulumi.export(f"site_{self.name}_bucket_name", bucket.bucket)

        logger.info(
            "Created site '%s' with %d resource description(s)",
            self.name,
            len(compiled.resources),
        )
        return SiteResources(
            rest_api=rest_api,
            deployment=deployment,
            stage=stage,
            bucket=bucket,
            bucket_read_role=bucket_read_role,
            files=files,
            functions=functions,
            authorizer=authorizer,
            unauthorized_response=unauthorized_response,
            method_settings=method_settings,
            permissions=permissions,
        )

    def get_or_create_resource(
        self, path: str, resources: dict[str, ApiResource], rest_api: RestApi
    ) -> Output[str]:
        path_parts = [part for part in path.split("/") if part]
        if not path_parts:
            return rest_api.root_resource_id

        path_key = "/".join(path_parts)
        if path_key in resources:
            return resources[path_key].id

        parent_id = self.get_or_create_resource("/".join(path_parts[:-1]), resources, rest_api)
        resource = ApiResource(
            self._resource_name("resource", path_key),
            rest_api=rest_api.id,
            parent_id=parent_id,
            path_part=path_parts[-1],
        )
        resources[path_key] = resource
        return resource.id

    def _resource_name(self, kind: str, path: str, http_method: str | None = None) -> str:
        name = f"{kind}-{http_method}-" if http_method else f"{kind}-"
        return safe_name(
            self._prefix, name + path_resource_name(path), MAX_RESOURCE_NAME_LENGTH, "", 0
        )

    def _create_bucket(
        self, routes: list[_StorageRoute]
    ) -> tuple[s3.Bucket, list[s3.BucketObject]]:
        bucket = s3.Bucket(self._prefix + "bucket", force_destroy=True)
        s3.BucketPublicAccessBlock(
            self._prefix + "bucket-pab",
            bucket=bucket.id,
            block_public_acls=True,
            block_public_policy=True,
            ignore_public_acls=True,
            restrict_public_buckets=True,
        )

        files = {}
        for route in routes:
            for key, file_path in self._local_files(route):
                if key not in files:
                    files[key] = self._create_bucket_object(bucket, key, file_path)
        logger.debug("Uploading %d file(s) to the site bucket", len(files))
        return bucket, list(files.values())

    def _local_files(self, route: _StorageRoute) -> list[tuple[str, Path]]:
        if isinstance(route, FolderRoute):
            directory = self._base_dir / route.dirname
            if not directory.is_dir():
                raise ValueError(f"Folder not found: {directory}")
            prefix = object_key(route.dirname)
            return [
                (
                    "/".join(filter(None, [prefix, file_path.relative_to(directory).as_posix()])),
                    file_path,
                )
                for file_path in sorted(directory.rglob("*"))
                if file_path.is_file()
            ]

        file_path = self._base_dir / route.filename
        if not file_path.is_file():
            raise ValueError(f"File not found: {file_path}")
        return [(object_key(route.filename), file_path)]

    def _create_bucket_object(
        self, bucket: s3.Bucket, key: str, file_path: Path
    ) -> s3.BucketObject:
        # The key alone names the object, a changing resource name would make Pulumi
        # delete the freshly uploaded object after replacing it
        mimetype, _ = mimetypes.guess_type(file_path.name)
        return s3.BucketObject(
            self._resource_name("object", key),
            bucket=bucket.id,
            key=key,
            source=FileAsset(file_path),
            content_type=mimetype,
        )

    def _create_invoke_permission(
        self, function_name: str, function_resources: FunctionResources, rest_api: RestApi
    ) -> Permission:
        return Permission(
            f"{self._prefix}{function_name}-permission",
            action="lambda:InvokeFunction",
            function=function_resources.function.name,
            principal="apigateway.amazonaws.com",
            source_arn=rest_api.execution_arn.apply(lambda arn: f"{arn}/*/*"),
        )

    def _create_authorizer(
        self, rest_api: RestApi, permissions: list[Permission]
    ) -> PulumiAuthorizer | None:
        authentication = self._config.authentication
        if authentication is None:
            return None

        function_name = self._compiled.authorizer_function_name
        function_resources = _create_authorizer_function(
            self._prefix, function_name, self._compiled.domain_name, authentication
        )
        function = function_resources.function
        authorizer = PulumiAuthorizer(
            self._prefix + "request-authorizer",
            rest_api=rest_api.id,
            name=function_name,
            type="REQUEST",
            authorizer_uri=function.invoke_arn,
            identity_source=AUTHORIZATION_IDENTITY_SOURCE,
            authorizer_result_ttl_in_seconds=authentication.cache_ttl_in_seconds,
        )
        permission = Permission(
            self._prefix + "request-authorizer-permission",
            action="lambda:InvokeFunction",
            function=function.name,
            principal="apigateway.amazonaws.com",
            source_arn=Output.all(rest_api.execution_arn, authorizer.id).apply(
                lambda args: f"{args[0]}/authorizers/{args[1]}"
            ),
        )
        permissions.append(permission)
        return authorizer

    def _create_method(  # noqa: PLR0913
        self,
        description: ResourceDescription,
        resource_id: Output[str],
        rest_api: RestApi,
        bucket: s3.Bucket | None,
        bucket_read_role: Role | None,
        functions: dict[str, FunctionResources],
    ) -> list[Resource]:
        path = description.path
        http_method = description.http_method
        method_spec = description.method
        integration_spec = description.integration

        authorizer = method_spec.authorizer
        method = Method(
            self._resource_name("method", path, http_method),
            rest_api=rest_api.id,
            resource_id=resource_id,
            http_method=http_method,
            authorization=method_spec.authorization_type,
            authorizer_id=authorizer.id if authorizer is not None else None,
            request_parameters=method_spec.request_parameters or None,
        )

        integration_args = {
            "request_parameters": integration_spec.request_parameters or None,
            "cache_key_parameters": list(integration_spec.cache_key_parameters) or None,
        }
        if integration_spec.kind == "s3":
            key = integration_spec.object_key
            integration_args |= {
                "type": "AWS",
                "integration_http_method": integration_spec.http_method,
                "uri": bucket.bucket.apply(
                    lambda name: f"arn:aws:apigateway:{get_region().name}:s3:path/{name}/{key}"
                ),
                "credentials": bucket_read_role.arn,
            }
        elif integration_spec.kind == "lambda":
            integration_args |= {
                "type": "AWS_PROXY",
                "integration_http_method": integration_spec.http_method,
                "uri": functions[integration_spec.function_name].function.invoke_arn,
            }
        else:
            integration_args |= {
                "type": "MOCK",
                "request_templates": integration_spec.request_templates,
                "content_handling": integration_spec.content_handling,
            }

        # Referencing method.http_method makes the integration wait for the method
        integration = Integration(
            self._resource_name("integration", path, http_method),
            rest_api=rest_api.id,
            resource_id=resource_id,
            http_method=method.http_method,
            **integration_args,
        )

        created: list[Resource] = [method, integration]
        method_responses = {}
        for response in method_spec.responses:
            method_response = MethodResponse(
                self._resource_name(f"method-response-{response.status_code}", path, http_method),
                rest_api=rest_api.id,
                resource_id=resource_id,
                http_method=method.http_method,
                status_code=response.status_code,
                response_parameters=response.response_parameters or None,
            )
            method_responses[response.status_code] = method_response
            created.append(method_response)

        for response in integration_spec.responses:
            depends_on = [integration]
            if response.status_code in method_responses:
                depends_on.append(method_responses[response.status_code])
            created.append(
                IntegrationResponse(
                    self._resource_name(
                        f"integration-response-{response.status_code}", path, http_method
                    ),
                    rest_api=rest_api.id,
                    resource_id=resource_id,
                    http_method=method.http_method,
                    status_code=response.status_code,
                    selection_pattern=response.selection_pattern,
                    response_parameters=response.response_parameters or None,
                    response_templates=response.response_templates,
                    content_handling=response.content_handling,
                    opts=ResourceOptions(depends_on=depends_on),
                )
            )
        return created
