import json
import logging
import os
from pathlib import Path

from appdirs import user_data_dir
from pulumi.automation import (
    ConfigValue,
    LocalWorkspaceOptions,
    ProjectBackend,
    ProjectSettings,
    Stack,
    create_or_select_stack,
)
from pulumi.automation.errors import CommandError
from rich.console import Console
from rich.table import Table

from gatewright.compiler import CompiledStack, compile_stack
from gatewright.config import StackConfig
from gatewright.exceptions import StackCompileError

logger = logging.getLogger(__name__)
console = Console(soft_wrap=True)

APP_NAME = "gatewright"
PASSPHRASE_ENV_VAR = "GATEWRIGHT_PASSPHRASE"  # noqa: S105


class ConfigLoadError(Exception):
    pass


def load_config(config_path: Path) -> StackConfig:
    """Read a stack configuration from a JSON file.

    Raises:
        ConfigLoadError: If the file is not valid JSON or not a valid configuration.
    """
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigLoadError(f"Cannot read {config_path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigLoadError(f"{config_path} must contain a JSON object")

    try:
        return StackConfig.from_dict(data)
    except (TypeError, ValueError) as e:
        raise ConfigLoadError(f"Invalid stack configuration in {config_path}: {e}") from e


def compile_config(config_path: Path) -> tuple[StackConfig, CompiledStack]:
    try:
        config = load_config(config_path)
        return config, compile_stack(config)
    except ConfigLoadError as e:
        console.print(f"[bold red]✗[/bold red] {e}", highlight=False)
        raise SystemExit(1) from None
    except StackCompileError as e:
        _show_compile_errors(e)
        raise SystemExit(1) from None


def _show_compile_errors(error: StackCompileError) -> None:
    console.print(
        f"\n[bold red]✗ Stack configuration has {len(error.errors)} error(s)[/bold red]"
    )
    for compile_error in error.errors:
        console.print(f"  [red]•[/red] {compile_error}", highlight=False)


def _resources_table(compiled: CompiledStack) -> Table:
    table = Table(title=f"Resources of {compiled.domain_name}", title_justify="left")
    table.add_column("Path", style="cyan")
    table.add_column("Method", style="bold")
    table.add_column("Integration")
    table.add_column("Authorization")
    table.add_column("Cache keys", style="dim")
    for resource in compiled.resources:
        integration = resource.integration
        target = integration.object_key or integration.function_name or ""
        table.add_row(
            resource.path,
            resource.http_method,
            f"{integration.kind} {target}".strip(),
            resource.method.authorization_type,
            ", ".join(resource.cache_key_parameters),
        )
    return table


def _stage_table(compiled: CompiledStack) -> Table:
    table = Table(title="Stage method settings", title_justify="left")
    table.add_column("Method path", style="cyan")
    table.add_column("Caching")
    table.add_column("TTL", justify="right")
    table.add_column("Logging")
    table.add_column("Throttling (rate/burst)", justify="right")
    for method_path, options in compiled.stage.method_options_by_path.items():
        throttling = (
            f"{options.throttling_rate_limit}/{options.throttling_burst_limit}"
            if options.throttling_rate_limit is not None
            else "-"
        )
        table.add_row(
            method_path,
            "[green]on[/green]" if options.caching_enabled else "[dim]off[/dim]",
            str(options.cache_ttl_in_seconds),
            options.logging_level,
            throttling,
        )
    return table


def run_plan(config_path: Path, json_output: bool = False) -> None:
    _, compiled = compile_config(config_path)
    if json_output:
        console.print_json(
            json.dumps(
                {
                    "stack_name": compiled.stack_name,
                    "rest_api_name": compiled.rest_api_name,
                    "domain_name": compiled.domain_name,
                    "resources": [
                        {
                            "path": r.path,
                            "http_method": r.http_method,
                            "integration": r.integration.kind,
                            "authorization": r.method.authorization_type,
                        }
                        for r in compiled.resources
                    ],
                    "functions": [f.name for f in compiled.functions],
                    "method_paths": list(compiled.stage.method_options_by_path),
                }
            )
        )
        return

    console.print(f"Stack [bold cyan]{compiled.stack_name}[/bold cyan]", highlight=False)
    console.print(_resources_table(compiled))
    console.print(_stage_table(compiled))
    if compiled.functions:
        console.print("\n[bold]Functions[/bold]")
        for function in compiled.functions:
            console.print(f"  {function.name}  [dim]{function.description}[/dim]", highlight=False)


def get_state_dir() -> Path:
    state_dir = Path(user_data_dir(APP_NAME)) / "state"
    state_dir.mkdir(parents=True, exist_ok=True)
    return state_dir


def _create_stack(config: StackConfig, compiled: CompiledStack, base_dir: Path) -> Stack:
    def program() -> None:
        # Imported here so plan never loads the Pulumi AWS provider
        from gatewright.aws import Site

        _ = Site(compiled.rest_api_name, config, base_dir=base_dir).resources

    backend = ProjectBackend(f"file://{get_state_dir()}")
    project_settings = ProjectSettings(name=APP_NAME, runtime="python", backend=backend)
    env_vars = {"PULUMI_CONFIG_PASSPHRASE": os.getenv(PASSPHRASE_ENV_VAR, "")}
    logger.debug("Setting up workspace for stack %s", compiled.stack_name)
    stack = create_or_select_stack(
        stack_name=compiled.stack_name,
        project_name=APP_NAME,
        program=program,
        opts=LocalWorkspaceOptions(env_vars=env_vars, project_settings=project_settings),
    )
    if region := os.getenv("AWS_REGION"):
        stack.set_config("aws:region", ConfigValue(value=region))
    return stack


def _run_stack_operation(config_path: Path, operation: str) -> None:
    config, compiled = compile_config(config_path)
    status = console.status(f"Preparing stack {compiled.stack_name}...")
    status.start()
    try:
        stack = _create_stack(config, compiled, config_path.parent.resolve())
    finally:
        status.stop()

    console.print(f"{operation.capitalize()} ", style="bold", end="")
    console.print(compiled.stack_name, style="bold cyan", end="")
    console.print(" → ", style="dim", end="")
    console.print(compiled.domain_name, style="bold yellow")

    try:
        if operation == "preview":
            result = stack.preview(on_output=console.out)
            console.print(f"\n[green]✓[/green] {result.change_summary}", highlight=False)
        elif operation == "deploy":
            result = stack.up(on_output=console.out)
            console.print("\n[bold green]✓ Deployed[/bold green]")
            for key, output in result.outputs.items():
                console.print(f"  {key}: [cyan]{output.value}[/cyan]", highlight=False)
        else:
            stack.destroy(on_output=console.out)
            console.print("\n[bold green]✓ Destroyed[/bold green]")
    except CommandError as e:
        logger.debug("Stack operation '%s' failed", operation, exc_info=True)
        console.print(f"\n[bold red]| Error[/bold red]\n{e}", highlight=False)
        raise SystemExit(1) from None


def run_preview(config_path: Path) -> None:
    _run_stack_operation(config_path, "preview")


def run_deploy(config_path: Path) -> None:
    _run_stack_operation(config_path, "deploy")


def run_destroy(config_path: Path) -> None:
    _run_stack_operation(config_path, "destroy")
