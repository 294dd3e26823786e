import re
from dataclasses import dataclass, field
from typing import Any, ClassVar, TypedDict, final

from gatewright.constants import (
    CORS_ALL_ORIGINS,
    DEFAULT_AUTHORIZER_CACHE_TTL_IN_SECONDS,
    DEFAULT_CACHE_TTL_IN_SECONDS,
    DEFAULT_MEMORY_SIZE,
    DEFAULT_THROTTLING_BURST_LIMIT,
    DEFAULT_THROTTLING_RATE_LIMIT,
    MAX_TIMEOUT_IN_SECONDS,
    HTTPMethod,
    HTTPMethodLiteral,
    RouteType,
)


class RequestParameterDict(TypedDict, total=False):
    cache_key: bool
    required: bool


@final
@dataclass(frozen=True, kw_only=True)
class RequestParameter:
    cache_key: bool = False
    required: bool = False


@dataclass(frozen=True, kw_only=True)
class _Route:
    kind: ClassVar[RouteType]
    # Whether the route is served on its base path and/or on a {proxy+} sub-path
    direct: ClassVar[bool] = True
    proxy: ClassVar[bool] = False

    public_path: str
    cache_ttl_in_seconds: int = DEFAULT_CACHE_TTL_IN_SECONDS
    authentication_enabled: bool = False
    cors_enabled: bool = False
    cors_allow_headers: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.public_path, str):
            raise TypeError("Public path must be a string")
        if not self.public_path.startswith("/"):
            raise ValueError(f"Public path must start with '/': {self.public_path!r}")
        if "*" in self.public_path.removesuffix("/*"):
            raise ValueError(
                f"Wildcard is only allowed as trailing '/*' segment: {self.public_path!r}"
            )
        if self.public_path.endswith("/*") and not self.proxy:
            raise ValueError(
                f"{self.kind} routes do not serve sub-paths, use a {self.kind}+ route for "
                f"{self.public_path!r}"
            )
        if self.cache_ttl_in_seconds < 0:
            raise ValueError("Cache TTL must be non-negative")
        for header in self.cors_allow_headers:
            if not isinstance(header, str) or not header:
                raise ValueError("Each cors_allow_headers value must be a non-empty string")

    @property
    def base_path(self) -> str:
        """Public path without the trailing wildcard segment.

        Example: '/assets/*' -> '/assets', '/*' -> '/'
        """
        path = self.public_path.removesuffix("/*")
        if len(path) > 1:
            path = path.rstrip("/")
        return path or "/"


@dataclass(frozen=True, kw_only=True)
class _StorageRoute(_Route):
    response_headers: dict[str, str] = field(default_factory=dict)

    @property
    def http_method(self) -> str:
        return HTTPMethod.GET.value


@final
@dataclass(frozen=True, kw_only=True)
class FileRoute(_StorageRoute):
    kind: ClassVar[RouteType] = "file"

    filename: str

    def __post_init__(self) -> None:
        super().__post_init__()
        _validate_local_path(self.filename, "filename")


@final
@dataclass(frozen=True, kw_only=True)
class FileProxyRoute(_StorageRoute):
    kind: ClassVar[RouteType] = "file+"
    proxy: ClassVar[bool] = True

    filename: str

    def __post_init__(self) -> None:
        super().__post_init__()
        _validate_local_path(self.filename, "filename")


@final
@dataclass(frozen=True, kw_only=True)
class FolderRoute(_StorageRoute):
    kind: ClassVar[RouteType] = "folder+"
    direct: ClassVar[bool] = False
    proxy: ClassVar[bool] = True

    dirname: str

    def __post_init__(self) -> None:
        super().__post_init__()
        _validate_local_path(self.dirname, "dirname")


@dataclass(frozen=True, kw_only=True)
class _FunctionRoute(_Route):
    http_method: HTTPMethodLiteral
    identifier: str
    filename: str
    memory_size: int = DEFAULT_MEMORY_SIZE
    timeout_in_seconds: int = MAX_TIMEOUT_IN_SECONDS
    environment: dict[str, str] = field(default_factory=dict)
    request_parameters: dict[str, RequestParameter] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__post_init__()
        valid_methods = {m.value for m in HTTPMethod}
        if self.http_method not in valid_methods:
            raise ValueError(
                f"Invalid HTTP method: {self.http_method!r}. "
                f"Valid: {', '.join(sorted(valid_methods))}"
            )
        if not self.identifier or not self.identifier.strip():
            raise ValueError("Function identifier cannot be empty")
        _validate_local_path(self.filename, "filename")
        if self.memory_size <= 0:
            raise ValueError("Memory size must be positive")
        if self.timeout_in_seconds <= 0:
            raise ValueError("Timeout must be positive")
        for name, value in self.environment.items():
            if not isinstance(value, str):
                raise TypeError(f"Environment variable '{name}' must be a string")
        for name, parameter in self.request_parameters.items():
            if not re.match(r"^[A-Za-z0-9_.-]+$", name):
                raise ValueError(f"Invalid request parameter name: {name!r}")
            if not isinstance(parameter, RequestParameter):
                raise TypeError(
                    f"Request parameter '{name}' must be a RequestParameter, "
                    f"got {type(parameter).__name__}"
                )

    @property
    def cache_key_parameter_names(self) -> list[str]:
        return [name for name, p in self.request_parameters.items() if p.cache_key]


@final
@dataclass(frozen=True, kw_only=True)
class FunctionRoute(_FunctionRoute):
    kind: ClassVar[RouteType] = "function"


@final
@dataclass(frozen=True, kw_only=True)
class FunctionProxyRoute(_FunctionRoute):
    kind: ClassVar[RouteType] = "function+"
    proxy: ClassVar[bool] = True


type Route = FileRoute | FileProxyRoute | FolderRoute | FunctionRoute | FunctionProxyRoute

ROUTE_TYPES: dict[str, type[_Route]] = {
    route_type.kind: route_type
    for route_type in (FileRoute, FileProxyRoute, FolderRoute, FunctionRoute, FunctionProxyRoute)
}


def _validate_local_path(value: str, field_name: str) -> None:
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string")
    if not value.strip():
        raise ValueError(f"{field_name} cannot be empty")


def parse_route(data: dict[str, Any]) -> Route:
    """Build a route from plain data, dispatching on its 'type' key."""
    data = dict(data)
    route_type = data.pop("type", None)
    if route_type not in ROUTE_TYPES:
        raise ValueError(
            f"Invalid route type: {route_type!r}. Valid: {', '.join(ROUTE_TYPES)}"
        )
    if route_type == "folder+" and "filename" in data:
        raise ValueError("folder+ routes serve a directory: use 'dirname' instead of 'filename'")

    if "cors_allow_headers" in data:
        data["cors_allow_headers"] = tuple(data["cors_allow_headers"])
    if "request_parameters" in data:
        data["request_parameters"] = {
            name: p if isinstance(p, RequestParameter) else RequestParameter(**p)
            for name, p in data["request_parameters"].items()
        }
    if "http_method" in data and isinstance(data["http_method"], HTTPMethod):
        data["http_method"] = data["http_method"].value

    return ROUTE_TYPES[route_type](**data)


class AuthenticationConfigDict(TypedDict, total=False):
    username: str
    password: str
    realm: str | None
    cache_ttl_in_seconds: int


@final
@dataclass(frozen=True, kw_only=True)
class AuthenticationConfig:
    username: str
    password: str
    realm: str | None = None
    cache_ttl_in_seconds: int = DEFAULT_AUTHORIZER_CACHE_TTL_IN_SECONDS

    def __post_init__(self) -> None:
        if not self.username:
            raise ValueError("Authentication username cannot be empty")
        if not self.password:
            raise ValueError("Authentication password cannot be empty")
        if self.cache_ttl_in_seconds < 0:
            raise ValueError("Authentication cache TTL must be non-negative")


class MonitoringConfigDict(TypedDict, total=False):
    access_logging_enabled: bool
    logging_enabled: bool
    metrics_enabled: bool
    tracing_enabled: bool


@final
@dataclass(frozen=True, kw_only=True)
class MonitoringConfig:
    access_logging_enabled: bool = False
    logging_enabled: bool = False
    metrics_enabled: bool = False
    tracing_enabled: bool = False


class ThrottlingConfigDict(TypedDict, total=False):
    rate_limit: int
    burst_limit: int


@final
@dataclass(frozen=True, kw_only=True)
class ThrottlingConfig:
    rate_limit: int = DEFAULT_THROTTLING_RATE_LIMIT
    burst_limit: int = DEFAULT_THROTTLING_BURST_LIMIT

    def __post_init__(self) -> None:
        if self.rate_limit < 0 or self.burst_limit < 0:
            raise ValueError("Throttling limits must be non-negative")


@final
@dataclass(frozen=True, kw_only=True)
class StackConfig:
    hosted_zone_name: str
    alias_record_name: str | None = None
    caching_enabled: bool = False
    authentication: AuthenticationConfig | None = None
    monitoring: MonitoringConfig | None = None
    throttling: ThrottlingConfig | None = None
    cors_allow_origins: tuple[str, ...] = (CORS_ALL_ORIGINS,)
    routes: tuple[Route, ...]

    def __post_init__(self) -> None:
        if not isinstance(self.hosted_zone_name, str) or not self.hosted_zone_name.strip():
            raise ValueError("Hosted zone name cannot be empty")
        if self.alias_record_name is not None and not self.alias_record_name.strip():
            raise ValueError("Alias record name cannot be empty")
        if not self.routes:
            raise ValueError("Stack configuration must contain at least one route")
        for route in self.routes:
            if not isinstance(route, tuple(ROUTE_TYPES.values())):
                raise TypeError(f"Invalid route type: {type(route).__name__}")

    @property
    def domain_name(self) -> str:
        """Example: 'foo.example.com' for alias record 'foo' in zone 'example.com'."""
        if self.alias_record_name:
            return f"{self.alias_record_name}.{self.hosted_zone_name}"
        return self.hosted_zone_name

    @property
    def cors_enabled(self) -> bool:
        return any(route.cors_enabled for route in self.routes)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StackConfig":
        data = dict(data)
        if isinstance(data.get("authentication"), dict):
            data["authentication"] = AuthenticationConfig(**data["authentication"])
        if isinstance(data.get("monitoring"), dict):
            data["monitoring"] = MonitoringConfig(**data["monitoring"])
        if isinstance(data.get("throttling"), dict):
            data["throttling"] = ThrottlingConfig(**data["throttling"])
        if "cors_allow_origins" in data:
            data["cors_allow_origins"] = tuple(data["cors_allow_origins"])
        data["routes"] = tuple(
            route if isinstance(route, _Route) else parse_route(route)
            for route in data.get("routes", ())
        )
        return cls(**data)
