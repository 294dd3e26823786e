"""Single-pass compilation of a stack configuration.

Every route is bound independently and all errors of the pass are collected, so a
configuration with several mistakes is reported in one go. No partial output is
returned: any error fails the whole pass with a StackCompileError.
"""

import logging
from dataclasses import dataclass, field
from typing import final

from gatewright.binding import (
    BindingContext,
    ResourceDescription,
    bind_preflight,
    bind_route,
    merge_cors_options,
    route_cors_options,
    route_paths,
)
from gatewright.config import FunctionProxyRoute, FunctionRoute, StackConfig, _FunctionRoute
from gatewright.cors import (
    UNAUTHORIZED_RESPONSE_TEMPLATES,
    CorsOptions,
    unauthorized_response_parameters,
)
from gatewright.exceptions import CompileError, DuplicateFunctionNameError, StackCompileError
from gatewright.naming import authorizer_function_name, rest_api_name, stack_name
from gatewright.stage import (
    StageConfig,
    aggregate_stage_options,
    expand_method_deployments,
    find_duplicate_method_paths,
)

logger = logging.getLogger("gatewright.compiler")

# Stands in for the authorizer handle when compiling without an infrastructure builder
REQUEST_AUTHORIZER = "request-authorizer"

CORS_ENV_ALLOW_ORIGIN = "GATEWRIGHT_CORS_ALLOW_ORIGIN"
CORS_ENV_ALLOW_ORIGINS = "GATEWRIGHT_CORS_ALLOW_ORIGINS"
CORS_ENV_ALLOW_CREDENTIALS = "GATEWRIGHT_CORS_ALLOW_CREDENTIALS"


@final
@dataclass(frozen=True)
class FunctionSpec:
    name: str
    route: FunctionRoute | FunctionProxyRoute
    description: str
    environment: dict[str, str] = field(default_factory=dict)


@final
@dataclass(frozen=True)
class UnauthorizedResponse:
    response_parameters: dict[str, str]
    response_templates: dict[str, str]


@final
@dataclass(frozen=True, kw_only=True)
class CompiledStack:
    stack_name: str
    rest_api_name: str
    domain_name: str
    resources: tuple[ResourceDescription, ...]
    stage: StageConfig
    functions: tuple[FunctionSpec, ...] = ()
    authorizer_function_name: str | None = None
    unauthorized_response: UnauthorizedResponse | None = None


def compile_stack(config: StackConfig, authorizer: object | None = None) -> CompiledStack:
    """Compile a stack configuration into resource descriptions and a stage configuration.

    Args:
        config: Validated stack configuration
        authorizer: Authorizer handle of the infrastructure builder. Ignored without
            authentication; a placeholder is used when authentication is configured but
            no handle is given.

    Raises:
        StackCompileError: With every validation error found in the configuration.
    """
    domain_name = config.domain_name
    if config.authentication is None:
        authorizer = None
    elif authorizer is None:
        authorizer = REQUEST_AUTHORIZER

    context = BindingContext(
        domain_name=domain_name,
        authorizer=authorizer,
        cors_allow_origins=config.cors_allow_origins,
    )
    logger.debug("Compiling %d route(s) for '%s'", len(config.routes), domain_name)

    errors: list[CompileError] = []
    resources: dict[tuple[str, str], ResourceDescription] = {}
    functions: dict[str, FunctionSpec] = {}
    cors_options = _cors_options_by_path(config)

    for route in config.routes:
        try:
            descriptions = bind_route(route, context)
        except CompileError as e:
            errors.append(e.attach_route(route.public_path))
            continue

        for description in descriptions:
            if description.http_method == "OPTIONS":
                # Routes sharing a path share one preflight method
                if description.key not in resources:
                    resources[description.key] = bind_preflight(
                        description.path, merge_cors_options(cors_options[description.path])
                    )
                continue
            resources.setdefault(description.key, description)

        if isinstance(route, _FunctionRoute):
            function = _function_spec(route, descriptions, config)
            if function.name in functions:
                errors.append(DuplicateFunctionNameError(function.name, route.public_path))
            functions[function.name] = function

    deployments = expand_method_deployments(config.routes)
    errors.extend(find_duplicate_method_paths(deployments))

    unauthorized_response = None
    if config.authentication is not None:
        try:
            unauthorized_response = UnauthorizedResponse(
                unauthorized_response_parameters(
                    config.authentication.realm, config.cors_enabled, config.cors_allow_origins
                ),
                UNAUTHORIZED_RESPONSE_TEMPLATES,
            )
        except CompileError as e:
            errors.append(e)

    if errors:
        logger.debug("Compilation of '%s' failed with %d error(s)", domain_name, len(errors))
        raise StackCompileError(errors)

    compiled = CompiledStack(
        stack_name=stack_name(domain_name),
        rest_api_name=rest_api_name(domain_name),
        domain_name=domain_name,
        resources=tuple(resources.values()),
        stage=aggregate_stage_options(config, deployments),
        functions=tuple(functions.values()),
        authorizer_function_name=(
            authorizer_function_name(domain_name) if config.authentication else None
        ),
        unauthorized_response=unauthorized_response,
    )
    logger.info(
        "Compiled '%s': %d resource description(s), %d function(s)",
        domain_name,
        len(compiled.resources),
        len(compiled.functions),
    )
    return compiled


def _function_spec(
    route: FunctionRoute | FunctionProxyRoute,
    descriptions: list[ResourceDescription],
    config: StackConfig,
) -> FunctionSpec:
    function_name = next(
        d.integration.function_name for d in descriptions if d.integration.kind == "lambda"
    )
    cors_env = {}
    if route.cors_enabled:
        cors_env[CORS_ENV_ALLOW_ORIGIN] = config.cors_allow_origins[0]
        cors_env[CORS_ENV_ALLOW_ORIGINS] = ",".join(config.cors_allow_origins)
        if route.authentication_enabled:
            cors_env[CORS_ENV_ALLOW_CREDENTIALS] = "true"

    return FunctionSpec(
        name=function_name,
        route=route,
        # Example: list-users => GET https://api.example.com/users
        description=(
            f"{route.identifier} => {route.http_method} "
            f"https://{config.domain_name}{route.public_path}"
        ),
        environment={**cors_env, **route.environment},
    )


def _cors_options_by_path(config: StackConfig) -> dict[str, list[CorsOptions]]:
    options: dict[str, list[CorsOptions]] = {}
    for route in config.routes:
        if not route.cors_enabled:
            continue
        route_options = route_cors_options(route, config.cors_allow_origins)
        for path, _ in route_paths(route):
            options.setdefault(path, []).append(route_options)
    return options
