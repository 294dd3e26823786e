import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import final

from gatewright.binding import proxy_path
from gatewright.config import Route, StackConfig
from gatewright.constants import PROXY_NAME, LoggingLevel
from gatewright.exceptions import DuplicateMethodPathError
from gatewright.naming import access_log_group_name

logger = logging.getLogger("gatewright.stage")


@final
@dataclass(frozen=True)
class MethodDeployment:
    http_method: str
    public_path: str
    proxy_name: str | None
    cache_ttl_in_seconds: int

    @property
    def resource_path(self) -> str:
        return proxy_path(self.public_path) if self.proxy_name else self.public_path


@final
@dataclass(frozen=True, kw_only=True)
class MethodOptions:
    caching_enabled: bool
    cache_ttl_in_seconds: int
    logging_level: LoggingLevel
    metrics_enabled: bool
    throttling_burst_limit: int | None
    throttling_rate_limit: int | None


@final
@dataclass(frozen=True, kw_only=True)
class StageConfig:
    method_options_by_path: dict[str, MethodOptions] = field(default_factory=dict)
    cache_cluster_enabled: bool = False
    access_log_group_name: str | None = None
    logging_level: LoggingLevel = "OFF"
    metrics_enabled: bool = False
    tracing_enabled: bool = False


def expand_method_deployments(routes: Iterable[Route]) -> list[MethodDeployment]:
    """Expand routes into one deployment per concrete gateway method.

    '+' route kinds are served on their base path and on a proxy sub-path, folder
    routes only on the proxy sub-path.
    """
    deployments = []
    for route in routes:
        proxy_names = ([None] if route.direct else []) + ([PROXY_NAME] if route.proxy else [])
        deployments.extend(
            MethodDeployment(
                http_method=route.http_method,
                public_path=route.base_path,
                proxy_name=proxy_name,
                cache_ttl_in_seconds=route.cache_ttl_in_seconds,
            )
            for proxy_name in proxy_names
        )
    return deployments


def method_path(deployment: MethodDeployment) -> str:
    """Stage method key of a deployment.

    Example: '/users' GET -> '/users/GET', root GET -> '//GET'
    """
    # The root resource is addressed with a doubled separator
    if deployment.resource_path == "/":
        return f"//{deployment.http_method}"
    return f"{deployment.resource_path}/{deployment.http_method}"


def find_duplicate_method_paths(
    deployments: Sequence[MethodDeployment],
) -> list[DuplicateMethodPathError]:
    seen = set()
    errors = []
    for deployment in deployments:
        path = method_path(deployment)
        if path in seen:
            errors.append(DuplicateMethodPathError(path, deployment.public_path))
        seen.add(path)
    return errors


def aggregate_stage_options(
    config: StackConfig, deployments: Sequence[MethodDeployment]
) -> StageConfig:
    """Fold all method deployments into one stage configuration.

    Raises:
        DuplicateMethodPathError: If two deployments share a method path.
    """
    monitoring = config.monitoring
    throttling = config.throttling
    logging_level: LoggingLevel = "INFO" if monitoring and monitoring.logging_enabled else "OFF"
    metrics_enabled = bool(monitoring and monitoring.metrics_enabled)

    method_options: dict[str, MethodOptions] = {}
    for deployment in deployments:
        path = method_path(deployment)
        if path in method_options:
            raise DuplicateMethodPathError(path, deployment.public_path)
        method_options[path] = MethodOptions(
            caching_enabled=config.caching_enabled and deployment.cache_ttl_in_seconds > 0,
            cache_ttl_in_seconds=deployment.cache_ttl_in_seconds,
            logging_level=logging_level,
            metrics_enabled=metrics_enabled,
            throttling_burst_limit=throttling.burst_limit if throttling else None,
            throttling_rate_limit=throttling.rate_limit if throttling else None,
        )

    logger.debug("Aggregated stage options for %d method path(s)", len(method_options))
    return StageConfig(
        method_options_by_path=method_options,
        cache_cluster_enabled=config.caching_enabled,
        access_log_group_name=(
            access_log_group_name(config.domain_name)
            if monitoring and monitoring.access_logging_enabled
            else None
        ),
        logging_level=logging_level,
        metrics_enabled=metrics_enabled,
        tracing_enabled=bool(monitoring and monitoring.tracing_enabled),
    )
