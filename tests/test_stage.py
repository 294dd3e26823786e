import pytest

from gatewright.config import (
    FileProxyRoute,
    FileRoute,
    FolderRoute,
    FunctionRoute,
    MonitoringConfig,
    StackConfig,
    ThrottlingConfig,
)
from gatewright.exceptions import DuplicateMethodPathError
from gatewright.stage import (
    MethodDeployment,
    MethodOptions,
    aggregate_stage_options,
    expand_method_deployments,
    find_duplicate_method_paths,
    method_path,
)


def _config(routes, **overrides):
    return StackConfig(hosted_zone_name="example.com", routes=tuple(routes), **overrides)


def _function_route(**overrides):
    values = {
        "public_path": "/x",
        "http_method": "POST",
        "identifier": "x",
        "filename": "functions/x.py",
    }
    values.update(overrides)
    return FunctionRoute(**values)


@pytest.mark.parametrize(
    ("deployment", "expected"),
    [
        (MethodDeployment("GET", "/", None, 300), "//GET"),
        (MethodDeployment("GET", "/", "proxy", 300), "/{proxy+}/GET"),
        (MethodDeployment("POST", "/users", None, 300), "/users/POST"),
        (MethodDeployment("GET", "/assets", "proxy", 300), "/assets/{proxy+}/GET"),
    ],
)
def test_method_path(deployment, expected):
    assert method_path(deployment) == expected


def test_expand_method_deployments():
    routes = [
        FileRoute(public_path="/", filename="index.html", cache_ttl_in_seconds=60),
        FileProxyRoute(public_path="/app/*", filename="index.html"),
        FolderRoute(public_path="/assets/*", dirname="dist"),
        _function_route(),
    ]

    deployments = expand_method_deployments(routes)

    assert deployments == [
        MethodDeployment("GET", "/", None, 60),
        MethodDeployment("GET", "/app", None, 300),
        MethodDeployment("GET", "/app", "proxy", 300),
        MethodDeployment("GET", "/assets", "proxy", 300),
        MethodDeployment("POST", "/x", None, 300),
    ]
    assert [d.resource_path for d in deployments] == [
        "/",
        "/app",
        "/app/{proxy+}",
        "/assets/{proxy+}",
        "/x",
    ]


def test_caching_follows_stack_flag_and_route_ttl():
    config = _config(
        [
            FileRoute(public_path="/", filename="index.html", cache_ttl_in_seconds=60),
            _function_route(cache_ttl_in_seconds=0),
        ],
        caching_enabled=True,
    )

    stage = aggregate_stage_options(config, expand_method_deployments(config.routes))

    assert stage.cache_cluster_enabled is True
    assert stage.method_options_by_path == {
        "//GET": MethodOptions(
            caching_enabled=True,
            cache_ttl_in_seconds=60,
            logging_level="OFF",
            metrics_enabled=False,
            throttling_burst_limit=None,
            throttling_rate_limit=None,
        ),
        "/x/POST": MethodOptions(
            caching_enabled=False,
            cache_ttl_in_seconds=0,
            logging_level="OFF",
            metrics_enabled=False,
            throttling_burst_limit=None,
            throttling_rate_limit=None,
        ),
    }


def test_caching_disabled_at_stack_level_disables_every_method():
    config = _config([FileRoute(public_path="/", filename="index.html")])

    stage = aggregate_stage_options(config, expand_method_deployments(config.routes))

    assert stage.cache_cluster_enabled is False
    assert stage.method_options_by_path["//GET"].caching_enabled is False
    assert stage.method_options_by_path["//GET"].cache_ttl_in_seconds == 300


def test_monitoring_and_throttling_apply_to_every_method():
    config = _config(
        [FileRoute(public_path="/", filename="index.html"), _function_route()],
        monitoring=MonitoringConfig(
            logging_enabled=True,
            metrics_enabled=True,
            tracing_enabled=True,
            access_logging_enabled=True,
        ),
        throttling=ThrottlingConfig(rate_limit=100, burst_limit=50),
    )

    stage = aggregate_stage_options(config, expand_method_deployments(config.routes))

    assert stage.logging_level == "INFO"
    assert stage.metrics_enabled is True
    assert stage.tracing_enabled is True
    assert stage.access_log_group_name == "/aws/apigateway/accessLogs/example.com"
    for options in stage.method_options_by_path.values():
        assert options.logging_level == "INFO"
        assert options.metrics_enabled is True
        assert options.throttling_rate_limit == 100
        assert options.throttling_burst_limit == 50


def test_no_monitoring_means_no_access_logs():
    config = _config([FileRoute(public_path="/", filename="index.html")])

    stage = aggregate_stage_options(config, expand_method_deployments(config.routes))

    assert stage.logging_level == "OFF"
    assert stage.access_log_group_name is None
    assert stage.tracing_enabled is False


def test_duplicate_method_paths_are_detected():
    routes = [
        FileRoute(public_path="/users", filename="index.html"),
        _function_route(public_path="/users", http_method="GET"),
        _function_route(public_path="/users", http_method="POST"),
    ]

    errors = find_duplicate_method_paths(expand_method_deployments(routes))

    assert len(errors) == 1
    assert errors[0].method_path == "/users/GET"
    assert errors[0].public_path == "/users"


def test_file_proxy_and_folder_on_same_path_conflict():
    routes = [
        FileProxyRoute(public_path="/app/*", filename="index.html"),
        FolderRoute(public_path="/app/*", dirname="dist"),
    ]

    errors = find_duplicate_method_paths(expand_method_deployments(routes))

    assert [e.method_path for e in errors] == ["/app/{proxy+}/GET"]


def test_aggregate_raises_on_duplicate_method_path():
    config = _config(
        [
            FileRoute(public_path="/", filename="index.html"),
            FileRoute(public_path="/", filename="other.html"),
        ]
    )

    with pytest.raises(DuplicateMethodPathError, match="'//GET' is already deployed"):
        aggregate_stage_options(config, expand_method_deployments(config.routes))
