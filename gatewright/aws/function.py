import logging
from dataclasses import dataclass
from pathlib import Path
from typing import final

from pulumi import Asset, AssetArchive, FileAsset, ResourceOptions
from pulumi_aws import cloudwatch, lambda_
from pulumi_aws.iam import Role

from gatewright.aws.iam import _create_lambda_role
from gatewright.compiler import FunctionSpec
from gatewright.config import AuthenticationConfig
from gatewright.constants import DEFAULT_RUNTIME

logger = logging.getLogger("gatewright.aws.function")

LAMBDA_EXCLUDED_DIRS = ["__pycache__"]
LAMBDA_EXCLUDED_EXTENSIONS = [".pyc"]
LOG_RETENTION_IN_DAYS = 14
AUTHORIZER_HANDLER_FILE = Path(__file__).parent / "authorizer" / "handler.py"


@final
@dataclass(frozen=True)
class FunctionResources:
    function: lambda_.Function
    role: Role
    log_group: cloudwatch.LogGroup


def _create_lambda_archive(handler_file: Path) -> AssetArchive:
    """Package the directory of the handler file.

    Handlers can import sibling modules, so every file next to the handler is included.
    """
    folder = handler_file.parent
    if not handler_file.is_file():
        raise ValueError(f"Handler file not found: {handler_file}")

    assets: dict[str, Asset] = {
        str(file_path.relative_to(folder)): FileAsset(file_path)
        for file_path in sorted(folder.rglob("*"))
        if not (
            file_path.is_dir()
            or file_path.suffix in LAMBDA_EXCLUDED_EXTENSIONS
            or any(part in LAMBDA_EXCLUDED_DIRS for part in file_path.parts)
        )
    }
    return AssetArchive(assets)


def _create_log_group(prefix: str, function_name: str) -> cloudwatch.LogGroup:
    return cloudwatch.LogGroup(
        f"{prefix}{function_name}-logs",
        name=f"/aws/lambda/{function_name}",
        retention_in_days=LOG_RETENTION_IN_DAYS,
    )


def _create_function(prefix: str, spec: FunctionSpec, base_dir: Path) -> FunctionResources:
    """Create the Lambda function serving a function route."""
    route = spec.route
    handler_file = base_dir / route.filename
    logger.debug("Packaging function '%s' from %s", spec.name, handler_file)

    role, attachment = _create_lambda_role(prefix, spec.name)
    log_group = _create_log_group(prefix, spec.name)
    function = lambda_.Function(
        f"{prefix}{spec.name}",
        name=spec.name,
        description=spec.description,
        role=role.arn,
        runtime=DEFAULT_RUNTIME,
        code=_create_lambda_archive(handler_file),
        handler=f"{handler_file.stem}.handler",
        environment={"variables": spec.environment} if spec.environment else None,
        memory_size=route.memory_size,
        timeout=route.timeout_in_seconds,
        tracing_config={"mode": "PassThrough"},
        # The log group must exist first, otherwise Lambda creates one without retention
        opts=ResourceOptions(depends_on=[attachment, log_group]),
    )
    return FunctionResources(function, role, log_group)


def _create_authorizer_function(
    prefix: str, function_name: str, domain_name: str, authentication: AuthenticationConfig
) -> FunctionResources:
    """Create the Lambda function backing the request authorizer."""
    role, attachment = _create_lambda_role(prefix, function_name)
    log_group = _create_log_group(prefix, function_name)
    function = lambda_.Function(
        f"{prefix}{function_name}",
        name=function_name,
        description=domain_name,
        role=role.arn,
        runtime=DEFAULT_RUNTIME,
        code=AssetArchive({"handler.py": FileAsset(AUTHORIZER_HANDLER_FILE)}),
        handler="handler.handler",
        environment={
            "variables": {
                "USERNAME": authentication.username,
                "PASSWORD": authentication.password,
            }
        },
        tracing_config={"mode": "PassThrough"},
        opts=ResourceOptions(depends_on=[attachment, log_group]),
    )
    return FunctionResources(function, role, log_group)
