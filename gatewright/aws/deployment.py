import json
from collections.abc import Sequence
from dataclasses import asdict
from hashlib import sha256

import pulumi
from pulumi import Resource, ResourceOptions
from pulumi_aws import cloudwatch
from pulumi_aws.apigateway import Deployment, MethodSettings, RestApi, Stage

from gatewright.binding import ResourceDescription
from gatewright.compiler import CompiledStack
from gatewright.naming import path_resource_name
from gatewright.stage import MethodOptions, StageConfig

DEFAULT_STAGE_NAME = "prod"
DEFAULT_CACHE_CLUSTER_SIZE = "0.5"
ACCESS_LOG_RETENTION_IN_DAYS = 14
ACCESS_LOG_FORMAT = json.dumps(
    {
        "requestId": "$context.requestId",
        "ip": "$context.identity.sourceIp",
        "user": "$context.identity.user",
        "requestTime": "$context.requestTime",
        "httpMethod": "$context.httpMethod",
        "resourcePath": "$context.resourcePath",
        "status": "$context.status",
        "protocol": "$context.protocol",
        "responseLength": "$context.responseLength",
    }
)


def _description_key(description: ResourceDescription) -> dict:
    """Serializable form of a description, without the authorizer handle."""
    integration = asdict(description.integration)
    return {
        "path": description.path,
        "http_method": description.http_method,
        "integration": integration,
        "authorization_type": description.method.authorization_type,
        "method_request_parameters": description.method.request_parameters,
        "method_responses": [asdict(r) for r in description.method.responses],
    }


def _calculate_deployment_hash(compiled: CompiledStack) -> str:
    """Calculates a stable hash for the deployment trigger from the compiled routes."""
    config = {
        "resources": sorted(
            (_description_key(d) for d in compiled.resources),
            key=lambda d: (d["path"], d["http_method"]),
        ),
        "functions": sorted(f.name for f in compiled.functions),
        "unauthorized_response": (
            asdict(compiled.unauthorized_response) if compiled.unauthorized_response else None
        ),
    }
    return sha256(json.dumps(config, sort_keys=True).encode()).hexdigest()


def _create_deployment(
    prefix: str, rest_api: RestApi, trigger_hash: str, depends_on: Sequence[Resource]
) -> Deployment:
    """Creates the API deployment, triggering redeployment based on config changes."""
    pulumi.log.debug(f"Deployment trigger hash of '{prefix}': {trigger_hash}")

    return Deployment(
        f"{prefix}deployment",
        rest_api=rest_api.id,
        triggers={"configuration_hash": trigger_hash},
        # Methods and integrations have to exist before they can be deployed
        opts=ResourceOptions(depends_on=list(depends_on)),
    )


def _create_access_log_group(prefix: str, name: str) -> cloudwatch.LogGroup:
    return cloudwatch.LogGroup(
        f"{prefix}access-logs",
        name=name,
        retention_in_days=ACCESS_LOG_RETENTION_IN_DAYS,
    )


def _create_stage(
    prefix: str,
    rest_api: RestApi,
    deployment: Deployment,
    stage_config: StageConfig,
    depends_on: Sequence[Resource] = (),
) -> tuple[Stage, cloudwatch.LogGroup | None]:
    log_group = None
    access_log_settings = None
    if stage_config.access_log_group_name:
        log_group = _create_access_log_group(prefix, stage_config.access_log_group_name)
        access_log_settings = {"destination_arn": log_group.arn, "format": ACCESS_LOG_FORMAT}

    stage = Stage(
        f"{prefix}stage-{DEFAULT_STAGE_NAME}",
        rest_api=rest_api.id,
        deployment=deployment.id,
        stage_name=DEFAULT_STAGE_NAME,
        cache_cluster_enabled=stage_config.cache_cluster_enabled,
        cache_cluster_size=(
            DEFAULT_CACHE_CLUSTER_SIZE if stage_config.cache_cluster_enabled else None
        ),
        xray_tracing_enabled=stage_config.tracing_enabled,
        access_log_settings=access_log_settings,
        opts=ResourceOptions(depends_on=list(depends_on)),
    )
    return stage, log_group


def settings_method_path(method_path: str) -> str:
    """Stage method key as expected by MethodSettings, which takes it without leading '/'.

    Example: '//GET' -> '/GET', '/users/{proxy+}/GET' -> 'users/{proxy+}/GET'
    """
    return method_path.removeprefix("/")


def _method_settings(options: MethodOptions) -> dict:
    settings = {
        "caching_enabled": options.caching_enabled,
        "cache_ttl_in_seconds": options.cache_ttl_in_seconds,
        "logging_level": options.logging_level,
        "metrics_enabled": options.metrics_enabled,
    }
    if options.throttling_burst_limit is not None:
        settings["throttling_burst_limit"] = options.throttling_burst_limit
    if options.throttling_rate_limit is not None:
        settings["throttling_rate_limit"] = options.throttling_rate_limit
    return settings


def _create_method_settings(
    prefix: str, rest_api: RestApi, stage: Stage, stage_config: StageConfig
) -> list[MethodSettings]:
    return [
        MethodSettings(
            f"{prefix}method-settings-{path_resource_name(method_path)}",
            rest_api=rest_api.id,
            stage_name=stage.stage_name,
            method_path=settings_method_path(method_path),
            settings=_method_settings(options),
        )
        for method_path, options in stage_config.method_options_by_path.items()
    ]
