"""Binding of routes to API Gateway resource descriptions.

A route becomes one description per concrete gateway method:
1. The direct path and/or its {proxy+} sub-path, each with an S3 or Lambda integration
2. One OPTIONS method per path with a MOCK integration when CORS is enabled
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Literal, final

from gatewright.config import (
    FolderRoute,
    FunctionProxyRoute,
    FunctionRoute,
    Route,
    _FunctionRoute,
    _Route,
    _StorageRoute,
)
from gatewright.constants import (
    CORS_ALL_ORIGINS,
    CORS_DEFAULT_HEADERS,
    MAX_TIMEOUT_IN_SECONDS,
    METHOD_RESPONSE_HEADER,
    PROXY_INTEGRATION_PARAMETER,
    PROXY_NAME,
    PROXY_PATH_PARAMETER,
)
from gatewright.cors import CorsOptions, CorsPreflight, synthesize_cors_preflight
from gatewright.exceptions import MissingAuthorizerError, TimeoutTooLargeError
from gatewright.naming import build_function_name

logger = logging.getLogger("gatewright.binding")

IntegrationKind = Literal["s3", "lambda", "mock"]
AuthorizationType = Literal["NONE", "CUSTOM"]

CONVERT_TO_TEXT = "CONVERT_TO_TEXT"
MOCK_REQUEST_TEMPLATES = {"application/json": "{ statusCode: 200 }"}

# (selection pattern, status code) of every S3 integration response
S3_RESPONSE_STATUSES = (("200", "200"), ("404", "404"), (r"5\d{2}", "500"))


@final
@dataclass(frozen=True, kw_only=True)
class IntegrationResponseSpec:
    status_code: str
    selection_pattern: str | None = None
    response_parameters: dict[str, str] = field(default_factory=dict)
    response_templates: dict[str, str] | None = None
    content_handling: str | None = None


@final
@dataclass(frozen=True, kw_only=True)
class MethodResponseSpec:
    status_code: str
    response_parameters: dict[str, bool] = field(default_factory=dict)


@final
@dataclass(frozen=True, kw_only=True)
class IntegrationSpec:
    kind: IntegrationKind
    http_method: str | None = None
    # Object key (or key template) inside the bucket for S3 integrations
    object_key: str | None = None
    function_name: str | None = None
    request_parameters: dict[str, str] = field(default_factory=dict)
    request_templates: dict[str, str] | None = None
    responses: tuple[IntegrationResponseSpec, ...] = ()
    cache_key_parameters: tuple[str, ...] = ()
    content_handling: str | None = None


@final
@dataclass(frozen=True, kw_only=True)
class MethodSpec:
    authorization_type: AuthorizationType = "NONE"
    authorizer: object | None = None
    request_parameters: dict[str, bool] = field(default_factory=dict)
    responses: tuple[MethodResponseSpec, ...] = ()


@final
@dataclass(frozen=True, kw_only=True)
class ResourceDescription:
    path: str
    http_method: str
    integration: IntegrationSpec
    method: MethodSpec

    @property
    def cache_key_parameters(self) -> tuple[str, ...]:
        return self.integration.cache_key_parameters

    @property
    def key(self) -> tuple[str, str]:
        return self.path, self.http_method


@final
@dataclass(frozen=True, kw_only=True)
class BindingContext:
    domain_name: str
    # Opaque authorizer handle, present iff the stack configures authentication
    authorizer: object | None = None
    cors_allow_origins: tuple[str, ...] = (CORS_ALL_ORIGINS,)


def bind_route(route: Route, context: BindingContext) -> list[ResourceDescription]:
    """Describe every gateway method the route needs.

    Raises:
        MissingAuthorizerError: If the route enables authentication without an authorizer.
        TimeoutTooLargeError: If a function route exceeds the integration timeout.
        NameTooLongError: If a function route's unique name is too long.
        CompileError: Any CORS validation error when the route enables CORS.
    """
    if route.authentication_enabled and context.authorizer is None:
        raise MissingAuthorizerError(route.public_path)

    preflight = (
        synthesize_cors_preflight(route_cors_options(route, context.cors_allow_origins))
        if route.cors_enabled
        else None
    )

    function_name = (
        bind_function_name(route, context.domain_name)
        if isinstance(route, _FunctionRoute)
        else None
    )

    descriptions = []
    for path, proxy in route_paths(route):
        if function_name is not None:
            descriptions.append(_function_description(route, path, proxy, context, function_name))
        else:
            descriptions.append(_storage_description(route, path, proxy, context, preflight))
        if preflight is not None:
            descriptions.append(_preflight_description(path, preflight))

    logger.debug(
        "Bound %s route '%s' to %d resource description(s)",
        route.kind,
        route.public_path,
        len(descriptions),
    )
    return descriptions


def bind_function_name(route: FunctionRoute | FunctionProxyRoute, domain_name: str) -> str:
    if route.timeout_in_seconds > MAX_TIMEOUT_IN_SECONDS:
        raise TimeoutTooLargeError(
            route.timeout_in_seconds, MAX_TIMEOUT_IN_SECONDS, route.public_path
        )
    return build_function_name(route.http_method, route.identifier, domain_name)


def route_cors_options(route: _Route, allow_origins: tuple[str, ...]) -> CorsOptions:
    return CorsOptions(
        allow_origins=allow_origins,
        allow_credentials=route.authentication_enabled,
        allow_headers=(
            CORS_DEFAULT_HEADERS + tuple(route.cors_allow_headers)
            if route.cors_allow_headers
            else None
        ),
    )


def merge_cors_options(options: Sequence[CorsOptions]) -> CorsOptions:
    """Combine the CORS options of routes sharing a path into one preflight.

    Credentials are allowed when any route allows them and the allowed headers are
    the union of every route's headers.
    """
    first = options[0]
    if all(o.allow_headers is None for o in options):
        allow_headers = None
    else:
        allow_headers = tuple(
            dict.fromkeys(
                header for o in options for header in (o.allow_headers or CORS_DEFAULT_HEADERS)
            )
        )
    return CorsOptions(
        allow_origins=first.allow_origins,
        allow_headers=allow_headers,
        allow_credentials=any(o.allow_credentials for o in options),
    )


def bind_preflight(path: str, options: CorsOptions) -> ResourceDescription:
    return _preflight_description(path, synthesize_cors_preflight(options))


def route_paths(route: _Route) -> list[tuple[str, bool]]:
    """List the (path, is_proxy) pairs a route is served on.

    Example: FileProxyRoute('/app/*') -> [('/app', False), ('/app/{proxy+}', True)]
    """
    paths = []
    if route.direct:
        paths.append((route.base_path, False))
    if route.proxy:
        paths.append((proxy_path(route.base_path), True))
    return paths


def proxy_path(base_path: str) -> str:
    return f"{base_path.rstrip('/')}/{{{PROXY_NAME}+}}"


def object_key(local_path: str) -> str:
    """Bucket key under which a local file or directory is uploaded.

    Example: './dist/index.html' -> 'dist/index.html'
    """
    parts = [part for part in PurePosixPath(local_path).parts if part not in ("/", ".", "..")]
    return "/".join(parts)


def _authorization(route: _Route, context: BindingContext) -> dict:
    if route.authentication_enabled:
        return {"authorization_type": "CUSTOM", "authorizer": context.authorizer}
    return {"authorization_type": "NONE", "authorizer": None}


def _storage_description(
    route: _StorageRoute,
    path: str,
    proxy: bool,
    context: BindingContext,
    preflight: CorsPreflight | None,
) -> ResourceDescription:
    if isinstance(route, FolderRoute):
        prefix = object_key(route.dirname)
        key = f"{prefix}/{{{PROXY_NAME}}}" if prefix else f"{{{PROXY_NAME}}}"
    else:
        key = object_key(route.filename)

    cors_parameters = {
        f"{METHOD_RESPONSE_HEADER}{name}": value
        for name, value in (preflight.simple_response_headers if preflight else {}).items()
    }
    success_parameters = {
        f"{METHOD_RESPONSE_HEADER}Content-Type": "integration.response.header.Content-Type",
        **cors_parameters,
        **{
            f"{METHOD_RESPONSE_HEADER}{name}": f"'{value}'"
            for name, value in route.response_headers.items()
        },
    }

    # Only folder proxies forward the tail segment, file proxies always serve the same object
    forwards_proxy = proxy and isinstance(route, FolderRoute)
    integration = IntegrationSpec(
        kind="s3",
        http_method="GET",
        object_key=key,
        request_parameters=(
            {PROXY_INTEGRATION_PARAMETER: PROXY_PATH_PARAMETER} if forwards_proxy else {}
        ),
        responses=tuple(
            IntegrationResponseSpec(
                status_code=status_code,
                selection_pattern=selection_pattern,
                response_parameters=(
                    success_parameters if status_code == "200" else dict(cors_parameters)
                ),
            )
            for selection_pattern, status_code in S3_RESPONSE_STATUSES
        ),
        cache_key_parameters=(PROXY_PATH_PARAMETER,) if proxy else (),
    )
    method = MethodSpec(
        **_authorization(route, context),
        request_parameters={PROXY_PATH_PARAMETER: True} if proxy else {},
        responses=tuple(
            MethodResponseSpec(
                status_code=response.status_code,
                response_parameters=dict.fromkeys(response.response_parameters, True),
            )
            for response in integration.responses
        ),
    )
    return ResourceDescription(
        path=path, http_method=route.http_method, integration=integration, method=method
    )


def _function_description(
    route: _FunctionRoute,
    path: str,
    proxy: bool,
    context: BindingContext,
    function_name: str,
) -> ResourceDescription:
    request_parameters = {
        f"method.request.querystring.{name}": parameter.required
        for name, parameter in route.request_parameters.items()
    }
    cache_key_parameters = [
        f"method.request.querystring.{name}" for name in route.cache_key_parameter_names
    ]
    if proxy:
        request_parameters[PROXY_PATH_PARAMETER] = True
        cache_key_parameters.append(PROXY_PATH_PARAMETER)

    integration = IntegrationSpec(
        kind="lambda",
        http_method="POST",
        function_name=function_name,
        cache_key_parameters=tuple(cache_key_parameters),
    )
    method = MethodSpec(**_authorization(route, context), request_parameters=request_parameters)
    return ResourceDescription(
        path=path, http_method=route.http_method, integration=integration, method=method
    )


def _preflight_description(path: str, preflight: CorsPreflight) -> ResourceDescription:
    status_code = str(preflight.status_code)
    integration = IntegrationSpec(
        kind="mock",
        request_templates=MOCK_REQUEST_TEMPLATES,
        responses=(
            IntegrationResponseSpec(
                status_code=status_code,
                response_parameters=preflight.integration_response_parameters,
                response_templates=preflight.response_templates,
                # Preflight requests fail on APIs with the */* binary media type otherwise
                content_handling=CONVERT_TO_TEXT,
            ),
        ),
        content_handling=CONVERT_TO_TEXT,
    )
    method = MethodSpec(
        responses=(
            MethodResponseSpec(
                status_code=status_code,
                response_parameters=preflight.method_response_parameters,
            ),
        )
    )
    return ResourceDescription(
        path=path, http_method="OPTIONS", integration=integration, method=method
    )
