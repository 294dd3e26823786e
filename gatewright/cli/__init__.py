import logging
import os
from importlib import metadata
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

import click
from appdirs import user_log_dir
from rich.console import Console
from rich.logging import RichHandler

from gatewright.cli.commands import run_deploy, run_destroy, run_plan, run_preview

console = Console()

app_logger = logging.getLogger("gatewright")
# Capture everything internally, handlers decide what is shown
app_logger.setLevel(logging.DEBUG)

app_name = "gatewright"
log_dir = Path(user_log_dir(app_name))
log_dir.mkdir(parents=True, exist_ok=True)
log_file_path = log_dir / f"{app_name}.log"
file_handler = TimedRotatingFileHandler(
    filename=str(log_file_path), when="D", interval=1, backupCount=7, encoding="utf-8"
)
file_handler.setLevel(logging.DEBUG)
file_handler.setFormatter(
    logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
)
app_logger.addHandler(file_handler)

logger = logging.getLogger(__name__)

# Suppress gRPC logging of the Pulumi engine connection
os.environ["GRPC_VERBOSITY"] = "ERROR"
logging.getLogger("grpc").setLevel(logging.ERROR)

config_argument = click.argument(
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)


@click.group(invoke_without_command=True)
@click.option(
    "--verbose", "-v", count=True, help="Increase verbosity. -v for INFO, -vv for DEBUG logs."
)
@click.option("--version", is_flag=True, help="Show gatewright and Pulumi versions.")
@click.pass_context
def cli(ctx: click.Context, verbose: int, version: bool) -> None:
    """Compile route configurations into API Gateway REST APIs."""
    if version:
        console.print(f"gatewright {metadata.version('gatewright')}")
        console.print(f"pulumi {metadata.version('pulumi')}")
        ctx.exit(0)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        ctx.exit(0)

    if verbose > 0:
        console_handler = RichHandler(
            console=console,
            show_time=False,
            show_level=True,
            markup=True,
            tracebacks_suppress=[click],
            rich_tracebacks=True,
        )
        if verbose == 1:
            console_handler.setLevel(logging.INFO)
            console.print("[italic blue]Console verbosity: INFO[/]")
        else:
            console_handler.setLevel(logging.DEBUG)
            console.print("[italic green]Console verbosity: DEBUG[/]")

        console.print(f"[italic dim]Logs saved to: {log_file_path}[/]")
        app_logger.addHandler(console_handler)


@click.command()
@config_argument
@click.option("--json", "json_output", is_flag=True, help="Print the plan as JSON.")
def plan(config_path: Path, json_output: bool) -> None:
    """Compiles a stack configuration and shows the resulting resources."""
    logger.info("Planning %s", config_path)
    run_plan(config_path, json_output=json_output)


@click.command()
@config_argument
def preview(config_path: Path) -> None:
    """Shows the changes that will be made when you deploy."""
    run_preview(config_path)


@click.command()
@config_argument
def deploy(config_path: Path) -> None:
    """Deploys the stack of a configuration."""
    run_deploy(config_path)


@click.command()
@config_argument
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
def destroy(config_path: Path, yes: bool) -> None:
    """Destroys every resource of the stack."""
    if not yes and not click.confirm(f"Destroy the stack of {config_path}?"):
        console.print("Destroy cancelled.")
        return
    run_destroy(config_path)


cli.add_command(plan)
cli.add_command(preview)
cli.add_command(deploy)
cli.add_command(destroy)
