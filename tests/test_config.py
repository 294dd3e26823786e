import pytest

from gatewright.config import (
    AuthenticationConfig,
    FileProxyRoute,
    FileRoute,
    FolderRoute,
    FunctionProxyRoute,
    FunctionRoute,
    MonitoringConfig,
    RequestParameter,
    StackConfig,
    ThrottlingConfig,
    parse_route,
)
from gatewright.constants import HTTPMethod


def _function_route(**overrides):
    values = {
        "public_path": "/users",
        "http_method": "GET",
        "identifier": "users",
        "filename": "functions/users.py",
    }
    values.update(overrides)
    return FunctionRoute(**values)


@pytest.mark.parametrize(
    ("public_path", "expected"),
    [
        ("/", "/"),
        ("/*", "/"),
        ("/assets/*", "/assets"),
        ("/assets/", "/assets"),
        ("/index.html", "/index.html"),
        ("/a/b/*", "/a/b"),
    ],
)
def test_base_path(public_path, expected):
    route = FileProxyRoute(public_path=public_path, filename="dist/index.html")

    assert route.base_path == expected


def test_public_path_must_start_with_slash():
    with pytest.raises(ValueError, match="must start with '/'"):
        FileRoute(public_path="index.html", filename="dist/index.html")


def test_public_path_wildcard_only_as_trailing_segment():
    with pytest.raises(ValueError, match="Wildcard is only allowed"):
        FolderRoute(public_path="/a/*/b", dirname="dist")


@pytest.mark.parametrize(
    ("route_type", "extra"),
    [
        (FileRoute, {"filename": "dist/index.html"}),
        (
            FunctionRoute,
            {"http_method": "GET", "identifier": "app", "filename": "functions/app.py"},
        ),
    ],
)
def test_trailing_wildcard_requires_proxy_route(route_type, extra):
    with pytest.raises(ValueError, match=r"use a (file|function)\+ route for '/app/\*'"):
        route_type(public_path="/app/*", **extra)


def test_parse_route_rejects_wildcard_on_file_route():
    with pytest.raises(ValueError, match="file routes do not serve sub-paths"):
        parse_route({"type": "file", "public_path": "/*", "filename": "dist/index.html"})


def test_negative_cache_ttl_is_rejected():
    with pytest.raises(ValueError, match="Cache TTL must be non-negative"):
        FileRoute(public_path="/", filename="dist/index.html", cache_ttl_in_seconds=-1)


def test_storage_routes_are_get_only():
    assert FileRoute(public_path="/", filename="a.html").http_method == "GET"
    assert FileProxyRoute(public_path="/*", filename="a.html").http_method == "GET"
    assert FolderRoute(public_path="/assets/*", dirname="dist").http_method == "GET"


def test_route_shapes():
    assert (FileRoute.direct, FileRoute.proxy) == (True, False)
    assert (FileProxyRoute.direct, FileProxyRoute.proxy) == (True, True)
    assert (FolderRoute.direct, FolderRoute.proxy) == (False, True)
    assert (FunctionRoute.direct, FunctionRoute.proxy) == (True, False)
    assert (FunctionProxyRoute.direct, FunctionProxyRoute.proxy) == (True, True)


def test_function_route_rejects_invalid_method():
    with pytest.raises(ValueError, match="Invalid HTTP method: 'FETCH'"):
        _function_route(http_method="FETCH")


@pytest.mark.parametrize("identifier", ["", "   "])
def test_function_route_rejects_empty_identifier(identifier):
    with pytest.raises(ValueError, match="identifier cannot be empty"):
        _function_route(identifier=identifier)


@pytest.mark.parametrize(
    ("field", "value", "message"),
    [
        ("memory_size", 0, "Memory size must be positive"),
        ("timeout_in_seconds", 0, "Timeout must be positive"),
        ("filename", "", "filename cannot be empty"),
    ],
)
def test_function_route_field_validation(field, value, message):
    with pytest.raises(ValueError, match=message):
        _function_route(**{field: value})


def test_function_route_rejects_non_string_environment():
    with pytest.raises(TypeError, match="Environment variable 'DEBUG' must be a string"):
        _function_route(environment={"DEBUG": True})


def test_function_route_rejects_invalid_request_parameter_name():
    with pytest.raises(ValueError, match="Invalid request parameter name"):
        _function_route(request_parameters={"bad name": RequestParameter()})


def test_function_route_cache_key_parameter_names():
    route = _function_route(
        request_parameters={
            "page": RequestParameter(cache_key=True),
            "tenant": RequestParameter(cache_key=True, required=True),
            "debug": RequestParameter(required=True),
        }
    )

    assert route.cache_key_parameter_names == ["page", "tenant"]


def test_parse_route_dispatches_on_type():
    route = parse_route(
        {
            "type": "function+",
            "public_path": "/api/*",
            "http_method": HTTPMethod.POST,
            "identifier": "api",
            "filename": "functions/api.py",
            "cors_allow_headers": ["X-Custom"],
            "request_parameters": {"q": {"cache_key": True}},
        }
    )

    assert isinstance(route, FunctionProxyRoute)
    assert route.http_method == "POST"
    assert route.cors_allow_headers == ("X-Custom",)
    assert route.request_parameters == {"q": RequestParameter(cache_key=True)}


def test_parse_route_rejects_unknown_type():
    with pytest.raises(ValueError, match="Invalid route type: 'lambda'"):
        parse_route({"type": "lambda", "public_path": "/"})


def test_parse_route_folder_with_filename_is_rejected():
    with pytest.raises(ValueError, match="use 'dirname' instead of 'filename'"):
        parse_route({"type": "folder+", "public_path": "/assets/*", "filename": "dist"})


def test_stack_config_requires_routes():
    with pytest.raises(ValueError, match="at least one route"):
        StackConfig(hosted_zone_name="example.com", routes=())


def test_stack_config_requires_hosted_zone_name():
    with pytest.raises(ValueError, match="Hosted zone name cannot be empty"):
        StackConfig(hosted_zone_name=" ", routes=(_function_route(),))


@pytest.mark.parametrize(
    ("alias_record_name", "expected"),
    [(None, "example.com"), ("api", "api.example.com")],
)
def test_domain_name(alias_record_name, expected):
    config = StackConfig(
        hosted_zone_name="example.com",
        alias_record_name=alias_record_name,
        routes=(_function_route(),),
    )

    assert config.domain_name == expected


def test_cors_enabled_when_any_route_enables_it():
    config = StackConfig(
        hosted_zone_name="example.com",
        routes=(
            _function_route(),
            FileRoute(public_path="/", filename="dist/index.html", cors_enabled=True),
        ),
    )

    assert config.cors_enabled is True


def test_authentication_validation():
    with pytest.raises(ValueError, match="username cannot be empty"):
        AuthenticationConfig(username="", password="secret")
    with pytest.raises(ValueError, match="password cannot be empty"):
        AuthenticationConfig(username="admin", password="")


def test_throttling_validation():
    with pytest.raises(ValueError, match="must be non-negative"):
        ThrottlingConfig(rate_limit=-1)


def test_from_dict_builds_nested_options():
    config = StackConfig.from_dict(
        {
            "hosted_zone_name": "example.com",
            "alias_record_name": "www",
            "caching_enabled": True,
            "authentication": {"username": "admin", "password": "secret", "realm": "Private"},
            "monitoring": {"logging_enabled": True},
            "throttling": {"rate_limit": 100, "burst_limit": 50},
            "cors_allow_origins": ["https://a.example.com", "https://b.example.com"],
            "routes": [
                {"type": "file", "public_path": "/", "filename": "dist/index.html"},
                {"type": "folder+", "public_path": "/assets/*", "dirname": "dist/assets"},
            ],
        }
    )

    assert config.domain_name == "www.example.com"
    assert config.authentication == AuthenticationConfig(
        username="admin", password="secret", realm="Private"
    )
    assert config.monitoring == MonitoringConfig(logging_enabled=True)
    assert config.throttling == ThrottlingConfig(rate_limit=100, burst_limit=50)
    assert config.cors_allow_origins == ("https://a.example.com", "https://b.example.com")
    assert [type(r) for r in config.routes] == [FileRoute, FolderRoute]


def test_from_dict_rejects_unknown_keys():
    with pytest.raises(TypeError):
        StackConfig.from_dict(
            {
                "hosted_zone_name": "example.com",
                "unknown": True,
                "routes": [{"type": "file", "public_path": "/", "filename": "index.html"}],
            }
        )
