"""Main CLI entry point for the cms-mirror command.

This module provides the Typer application behind the cms-mirror tool. Global
options (verbosity, log directory, colors) live on the app callback; each
engine operation is a subcommand working on the workspace enclosing the
current directory.
"""

import logging
import sys
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

import typer

from cms_mirror.mirror.checksum import checksum
from cms_mirror.mirror.container import Container
from cms_mirror.mirror.errors import InconsistentStateError
from cms_mirror.mirror.layout import LayoutConfig
from cms_mirror.mirror.models import ObjectRef, ReconcileOutcome, ReconcileResult
from cms_mirror.remote_client.errors import (
    InvalidCredentialsError,
    RemoteUnreachableError,
    SyncError,
)
from cms_mirror.workspace.errors import ConfigError
from cms_mirror.workspace.models import ContainerConfig, WorkspaceConfig
from cms_mirror.workspace.workspace import Workspace, http_remote_factory

from .errors import PathNotMirroredError
from .models import ExitCode
from .output import OutputHandler

VERSION = "0.1.0"

app = typer.Typer(
    name="cms-mirror",
    help="""Mirror remote CMS content objects to local files and push edits back.

QUICK START:
  cms-mirror init --endpoint <url>          # Create .cms-mirror/config.yaml
  cms-mirror pull                           # Export changed objects
  cms-mirror save <path>...                 # Upload local edits
  cms-mirror sync-revision <path>           # Adopt the remote revision""",
    add_completion=False,
    rich_markup_mode=None,
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)


def _configure_logging(verbosity: int, logdir: Optional[str] = None) -> None:
    """Configure logging based on verbosity level.

    Configures only the 'cms_mirror' namespace logger to avoid affecting
    third-party libraries. The root logger is left unchanged.

    Args:
        verbosity: Verbosity level (0=WARNING, 1=INFO, 2=DEBUG)
        logdir: Optional directory for log files (creates timestamped log file)
    """
    if verbosity == 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    app_logger = logging.getLogger("cms_mirror")
    app_logger.setLevel(level)
    app_logger.handlers.clear()

    log_format = "%(asctime)s [%(levelname)8s] %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"
    formatter = logging.Formatter(log_format, datefmt=date_format)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    app_logger.addHandler(console_handler)

    if logdir:
        log_path = Path(logdir)
        log_path.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_path / f"cms-mirror_{timestamp}.log"

        file_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        file_formatter = logging.Formatter(file_format, datefmt=date_format)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(file_formatter)
        app_logger.addHandler(file_handler)

        logger.info(f"Logging to file: {log_file}")


def _exit_code_for(error: Optional[BaseException]) -> ExitCode:
    """Exit code for an error, looking through wrapped causes (e.g. an aborted pull)."""
    while error is not None:
        if isinstance(error, InvalidCredentialsError):
            return ExitCode.AUTH_ERROR
        if isinstance(error, RemoteUnreachableError):
            return ExitCode.NETWORK_ERROR
        if isinstance(error, InconsistentStateError):
            return ExitCode.INCONSISTENT_STATE
        error = error.__cause__
    return ExitCode.GENERAL_ERROR


@contextmanager
def _handle_errors(output: OutputHandler, action: str) -> Iterator[None]:
    """Turn engine errors into an error line and a matching exit code."""
    try:
        yield
    except typer.Exit:
        raise
    except SyncError as e:
        logger.error(f"{action} failed: {e}")
        output.error(f"{action} failed: {e}")
        raise typer.Exit(_exit_code_for(e))
    except Exception as e:
        logger.exception(f"Unexpected error during {action.lower()}")
        output.error(f"Unexpected error: {e}")
        raise typer.Exit(ExitCode.GENERAL_ERROR)


def _output(ctx: typer.Context) -> OutputHandler:
    return ctx.obj["output"]


def _open_workspace() -> Workspace:
    root = Workspace.locate_root(Path.cwd())
    return Workspace.open(root, http_remote_factory())


def _resolve(workspace: Workspace, path: str) -> Tuple[Container, ObjectRef]:
    container, ref = workspace.find(path)
    if container is None:
        raise PathNotMirroredError(path)
    if ref is None:
        raise PathNotMirroredError(path, f"not an object file of container '{container.name}'")
    return container, ref


def _parse_container_option(value: str) -> ContainerConfig:
    name, sep, path = value.partition(":")
    if not sep:
        raise ConfigError(f"Expected NAME:PATH, got '{value}'", 'containers')
    return ContainerConfig(name=name.strip(), path=path.strip() or "/")


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbosity: int = typer.Option(
        0,
        "--verbosity",
        "-v",
        help="Verbosity level: 0=summary, 1=info, 2=debug",
    ),
    logdir: Optional[str] = typer.Option(
        None,
        "--logdir",
        help="Directory for log files (creates timestamped log file)",
    ),
    no_color: bool = typer.Option(
        False,
        "--no-color",
        help="Disable colored output",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
        is_eager=True,
    ),
) -> None:
    """Mirror remote CMS content objects to local files and push edits back."""
    if version:
        typer.echo(f"cms-mirror version {VERSION}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()

    _configure_logging(verbosity, logdir)
    ctx.obj = {"output": OutputHandler(verbosity=verbosity, no_color=no_color)}


@app.command()
def init(
    ctx: typer.Context,
    endpoint: str = typer.Option(..., "--endpoint", help="Base URL of the remote store API"),
    containers: Optional[List[str]] = typer.Option(
        None,
        "--container",
        help="Container to mirror as NAME:PATH (repeatable, default main:/)",
        metavar="NAME:PATH",
    ),
    markup_ext: str = typer.Option("html", "--markup-ext", help="Extension of template files"),
    style_ext: str = typer.Option("less", "--style-ext", help="Extension of stylesheet files"),
    script_ext: str = typer.Option("js", "--script-ext", help="Extension of controller scripts"),
) -> None:
    """Create .cms-mirror/config.yaml in the current directory."""
    output = _output(ctx)
    with _handle_errors(output, "Initialization"):
        values = containers or ["main:/"]
        config = WorkspaceConfig(
            endpoint=endpoint.rstrip("/"),
            containers=[_parse_container_option(value) for value in values],
            layout=LayoutConfig(markup_ext, style_ext, script_ext),
        )
        config_path = Workspace.init(Path.cwd(), config)
        output.success("Workspace initialized")
        output.info(f"  Config file: {config_path}")
        output.info("")
        output.info("Next steps:")
        output.info("  1. Set CMS_MIRROR_TOKEN (environment or .env)")
        output.info("  2. Run 'cms-mirror pull' to export the remote content")


@app.command()
def pull(
    ctx: typer.Context,
    containers: Optional[List[str]] = typer.Option(
        None, "--container", "-c", help="Only pull these containers (repeatable)"
    ),
    allow_dirty: bool = typer.Option(
        False, "--allow-dirty", help="Pull even if the working tree has uncommitted changes"
    ),
) -> None:
    """Export changed remote objects to local files."""
    output = _output(ctx)
    with _handle_errors(output, "Pull"):
        workspace = _open_workspace()
        with workspace.lock():
            with output.progress_bar() as progress:
                task = progress.add_task("Fetching snapshots", total=None)

                def report(message: str, completed: int, total: int) -> None:
                    progress.update(task, description=message, completed=completed, total=total or None)

                results = workspace.pull(containers, allow_dirty=allow_dirty, progress=report)
        output.print_pull_summary(results)


@app.command()
def save(
    ctx: typer.Context,
    paths: List[str] = typer.Argument(..., help="Object files or folders to upload"),
) -> None:
    """Upload local objects, creating the ones that were never saved."""
    output = _output(ctx)
    with _handle_errors(output, "Save"):
        workspace = _open_workspace()
        grouped: Dict[str, List[ObjectRef]] = {}
        for path in paths:
            container, ref = _resolve(workspace, path)
            grouped.setdefault(container.name, []).append(ref)

        reports = []
        with workspace.lock():
            for name, refs in grouped.items():
                container = workspace.container(name)
                container.queue.take_reports()
                for ref in refs:
                    container.enqueue_save(ref)
                container.queue.wait_idle()
                reports.extend(container.queue.take_reports())

        output.print_save_summary(reports)
        if any(report.failures for report in reports):
            raise typer.Exit(ExitCode.GENERAL_ERROR)


@app.command()
def rename(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Object file or folder"),
    new_handle: str = typer.Argument(..., help="New handle"),
) -> None:
    """Rename an object remotely and locally."""
    output = _output(ctx)
    with _handle_errors(output, "Rename"):
        workspace = _open_workspace()
        container, ref = _resolve(workspace, path)
        with workspace.lock(), output.spinner(f"Renaming {ref.kind.value} {ref.handle}..."):
            renamed = container.rename(ref, new_handle)
        output.success(f"Renamed {ref.kind.value} {ref.handle} to {renamed.handle}")
        output.info(f"  Path: {renamed.local_path}")


@app.command()
def clone(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Object file or folder"),
    new_handle: str = typer.Argument(..., help="Handle of the copy"),
) -> None:
    """Create a remote copy of an object under a new handle."""
    output = _output(ctx)
    with _handle_errors(output, "Clone"):
        workspace = _open_workspace()
        container, ref = _resolve(workspace, path)
        with workspace.lock(), output.spinner(f"Cloning {ref.kind.value} {ref.handle}..."):
            cloned = container.clone(ref, new_handle)
        output.success(f"Cloned {ref.kind.value} {ref.handle} as {cloned.handle} (id {cloned.id})")
        output.info(f"  Path: {cloned.local_path}")


@app.command()
def delete(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Object file or folder"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete an object remotely and locally."""
    output = _output(ctx)
    with _handle_errors(output, "Delete"):
        workspace = _open_workspace()
        container, ref = _resolve(workspace, path)
        if not yes and not typer.confirm(
            f"Delete {ref.kind.value} '{ref.handle}' from the remote store and disk?"
        ):
            output.warning("Delete cancelled")
            raise typer.Exit(ExitCode.SUCCESS)
        with workspace.lock(), output.spinner(f"Deleting {ref.kind.value} {ref.handle}..."):
            container.delete(ref)
        output.success(f"Deleted {ref.kind.value} {ref.handle}")


@app.command("sync-revision")
def sync_revision(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Object file or folder"),
    overwrite: bool = typer.Option(
        False, "--overwrite", help="Overwrite local files if the content differs"
    ),
    keep: bool = typer.Option(
        False, "--keep", help="Keep local files if the content differs"
    ),
) -> None:
    """Adopt the remote revision of an object, overwriting local files on request."""
    output = _output(ctx)
    with _handle_errors(output, "Sync revision"):
        if overwrite and keep:
            raise ConfigError("--overwrite and --keep are mutually exclusive")
        workspace = _open_workspace()
        container, ref = _resolve(workspace, path)

        def confirm(mismatch: ReconcileResult) -> bool:
            if overwrite or keep:
                return overwrite
            return typer.confirm(
                f"{ref.kind.value} '{ref.handle}' differs from remote revision "
                f"{mismatch.remote_revision}. Overwrite local files?"
            )

        with workspace.lock():
            result = container.sync_revision(ref, confirm)
        output.print_reconcile_result(result)
        if result.outcome is ReconcileOutcome.CHECKSUM_MISMATCH:
            raise typer.Exit(ExitCode.CONFLICTS)


@app.command()
def reload(ctx: typer.Context) -> None:
    """Re-read local metadata from disk, e.g. after a git checkout."""
    output = _output(ctx)
    with _handle_errors(output, "Reload"):
        workspace = _open_workspace()
        workspace.reload_metadata()
        output.success(f"Reloaded metadata of {len(workspace.containers)} container(s)")


@app.command()
def pages(
    ctx: typer.Context,
    containers: Optional[List[str]] = typer.Option(
        None, "--container", "-c", help="Only list these containers (repeatable)"
    ),
) -> None:
    """List components mounted on page paths."""
    output = _output(ctx)
    with _handle_errors(output, "Listing pages"):
        workspace = _open_workspace()
        for container in workspace.select(containers):
            output.print_pages(container.name, container.list_pages())


@app.command()
def status(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Object file or folder"),
) -> None:
    """Show what object a path belongs to and whether it changed locally."""
    output = _output(ctx)
    with _handle_errors(output, "Status"):
        workspace = _open_workspace()
        container, ref = _resolve(workspace, path)
        modified = False
        if ref.is_synced and container.layout.exists(ref.kind, ref.handle):
            obj = container.layout.build_object(
                ref.kind, ref.handle, ref.id, ref.revision, create_missing=False
            )
            modified = checksum(obj) != ref.checksum
        output.print_status(container.name, ref, modified)


def main() -> None:
    """Main entry point for the CLI application."""
    app()


# Allow running as: python -m cms_mirror.cli.main
if __name__ == "__main__":
    main()
