"""CORS support for the compiled REST API.

This module derives:
1. The preflight (OPTIONS) response headers and, for multiple allowed origins, a
   response template that echoes a matching request origin
2. The headers of the gateway-wide UNAUTHORIZED response
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import final

from gatewright.constants import (
    CORS_ALL_METHODS,
    CORS_ALL_ORIGINS,
    CORS_ANY_METHOD,
    CORS_DEFAULT_HEADERS,
    DEFAULT_CORS_STATUS_CODE,
    GATEWAY_RESPONSE_HEADER,
    METHOD_RESPONSE_HEADER,
)
from gatewright.exceptions import (
    ConflictingCacheOptionsError,
    InvalidMethodsError,
    InvalidOriginsError,
    MixedOriginsError,
)

logger = logging.getLogger("gatewright.cors")

# Headers that also apply to actual (non-preflight) responses
SIMPLE_RESPONSE_HEADERS = (
    "Access-Control-Allow-Origin",
    "Vary",
    "Access-Control-Allow-Credentials",
    "Access-Control-Expose-Headers",
)

UNAUTHORIZED_RESPONSE_TEMPLATES = {
    "application/json": '{"message":$context.error.messageString}',
    "text/html": "$context.error.message",
}


@final
@dataclass(frozen=True, kw_only=True)
class CorsOptions:
    allow_origins: tuple[str, ...]
    allow_headers: tuple[str, ...] | None = None
    allow_methods: tuple[str, ...] | None = None
    allow_credentials: bool = False
    max_age: int | None = None
    disable_cache: bool = False
    expose_headers: tuple[str, ...] | None = None
    status_code: int = DEFAULT_CORS_STATUS_CODE


@final
@dataclass(frozen=True)
class CorsPreflight:
    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    response_template: str | None = None

    @property
    def integration_response_parameters(self) -> dict[str, str]:
        return {f"{METHOD_RESPONSE_HEADER}{name}": value for name, value in self.headers.items()}

    @property
    def method_response_parameters(self) -> dict[str, bool]:
        return {f"{METHOD_RESPONSE_HEADER}{name}": True for name in self.headers}

    @property
    def response_templates(self) -> dict[str, str] | None:
        if self.response_template is None:
            return None
        return {"application/json": self.response_template}

    @property
    def simple_response_headers(self) -> dict[str, str]:
        return {
            name: value for name, value in self.headers.items() if name in SIMPLE_RESPONSE_HEADERS
        }


def synthesize_cors_preflight(options: CorsOptions) -> CorsPreflight:
    """Build the preflight response headers for the given CORS options.

    Raises:
        InvalidOriginsError: If no origin is allowed.
        MixedOriginsError: If '*' is combined with specific origins.
        InvalidMethodsError: If 'ANY' is combined with other methods.
        ConflictingCacheOptionsError: If both max_age and disable_cache are set.
    """
    headers: dict[str, str] = {}

    allow_headers = options.allow_headers or CORS_DEFAULT_HEADERS
    headers["Access-Control-Allow-Headers"] = _quote(allow_headers)

    _validate_origins(options.allow_origins)
    # The first origin is static, the remaining ones are matched in the response template
    initial_origin = options.allow_origins[0]
    headers["Access-Control-Allow-Origin"] = f"'{initial_origin}'"
    # https://developer.mozilla.org/en-US/docs/Web/HTTP/Headers/Access-Control-Allow-Origin#cors_and_caching
    if initial_origin != CORS_ALL_ORIGINS:
        headers["Vary"] = "'Origin'"

    allow_methods = options.allow_methods or CORS_ALL_METHODS
    if CORS_ANY_METHOD in allow_methods:
        if len(allow_methods) > 1:
            raise InvalidMethodsError(allow_methods)
        allow_methods = CORS_ALL_METHODS
    headers["Access-Control-Allow-Methods"] = _quote(allow_methods)

    if options.allow_credentials:
        headers["Access-Control-Allow-Credentials"] = "'true'"

    if options.max_age and options.disable_cache:
        raise ConflictingCacheOptionsError(options.max_age)
    max_age_seconds = -1 if options.disable_cache else options.max_age
    if max_age_seconds:
        headers["Access-Control-Max-Age"] = f"'{max_age_seconds}'"

    if options.expose_headers:
        headers["Access-Control-Expose-Headers"] = _quote(options.expose_headers)

    template = render_origin_template(options.allow_origins)
    logger.debug(
        "Synthesized CORS preflight with %d header(s), origin template: %s",
        len(headers),
        template is not None,
    )
    return CorsPreflight(options.status_code, headers, template)


def render_origin_template(allow_origins: Sequence[str]) -> str | None:
    """Render a Velocity template overriding the allowed origin on a match.

    Origins after the first are used as patterns. Returns None for a single origin.
    """
    origins = allow_origins[1:]
    if not origins:
        return None

    condition = " || ".join(f'$origin.matches("{origin}")' for origin in origins)
    return "\n".join(
        [
            '#set($origin = $input.params().header.get("Origin"))',
            '#if($origin == "") #set($origin = $input.params().header.get("origin")) #end',
            f"#if({condition})",
            "  #set($context.responseOverride.header.Access-Control-Allow-Origin = $origin)",
            "#end",
        ]
    )


def unauthorized_response_parameters(
    realm: str | None, cors_enabled: bool, allow_origins: Sequence[str]
) -> dict[str, str]:
    """Build the response headers of the gateway-wide UNAUTHORIZED response.

    Without CORS headers on this response, browsers report a CORS failure instead of
    the authentication challenge.
    """
    parameters = {}
    if cors_enabled:
        _validate_origins(allow_origins)
        parameters[f"{GATEWAY_RESPONSE_HEADER}Access-Control-Allow-Origin"] = (
            "method.request.header.origin"
        )
        parameters[f"{GATEWAY_RESPONSE_HEADER}Access-Control-Allow-Credentials"] = "'true'"
        parameters[f"{GATEWAY_RESPONSE_HEADER}Access-Control-Allow-Headers"] = (
            "'Authorization,*'"
        )

    parameters[f"{GATEWAY_RESPONSE_HEADER}WWW-Authenticate"] = (
        f"'Basic realm={realm}'" if realm else "'Basic'"
    )
    return parameters


def _validate_origins(allow_origins: Sequence[str]) -> None:
    if not allow_origins:
        raise InvalidOriginsError()
    if CORS_ALL_ORIGINS in allow_origins and len(allow_origins) > 1:
        raise MixedOriginsError(allow_origins)


def _quote(values: Sequence[str]) -> str:
    return f"'{','.join(values)}'"
