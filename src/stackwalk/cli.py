"""
Command-line interface for running commands across a branch stack.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
import os
import shlex
import sys
from pathlib import Path
from typing import Optional, Tuple
from datetime import datetime

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.tree import Tree

from .cascade_orchestrator import CascadeOrchestrator, StackSnapshot
from .cli_reporter import CliReporter
from .models import (
    ConfigError,
    GitRepositoryError,
    GraphError,
    RunOptions,
    StackError,
    UsageError,
)
from . import __version__ as PACKAGE_VERSION


# Progress and diagnostics go to stderr so the cascaded command owns stdout
console = Console(stderr=True)
stdout_console = Console()
logger = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_USAGE = 64
EXIT_CONFIG = 78
EXIT_INTERRUPTED = 130

_ACTION_STYLES = {
    "pick": "green",
    "protected": "cyan",
    "delete": "red",
}


def _print_version(ctx, param, value):
    """Eager option callback to print version and exit."""
    if not value or ctx.resilient_parsing:
        return
    click.echo(f"stackwalk {PACKAGE_VERSION}")
    ctx.exit()


def _default_log_path() -> Path:
    """Determine default log file path (~/.stackwalk/stackwalk.log)."""
    env_path = os.environ.get("STACKWALK_LOG")
    if env_path:
        p = Path(env_path).expanduser()
        p.parent.mkdir(parents=True, exist_ok=True)
        return p
    base = Path.home() / ".stackwalk"
    base.mkdir(parents=True, exist_ok=True)
    return base / "stackwalk.log"


def setup_logging(verbose: bool = False, console_level: Optional[str] = None, log_file: Optional[Path] = None) -> Path:
    """Setup logging with a per-run file and a rotating aggregate:
    - Per-run log file: <stem>-YYYYMMDD_HHMMSS.log
    - Aggregate log: <stem>.log (rotated)
    - Console logging disabled unless --verbose or --log-level is given
    Returns the aggregate log path.
    """
    provided = Path(log_file) if log_file else _default_log_path()
    if provided.exists() and provided.is_dir():
        base_dir = provided
        base_stem = "stackwalk"
        aggregate_path = base_dir / f"{base_stem}.log"
    else:
        base_dir = provided.parent
        base_stem = provided.stem or "stackwalk"
        aggregate_path = provided
    base_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    per_run_path = base_dir / f"{base_stem}-{timestamp}.log"

    root = logging.getLogger()
    # Repeated invocations (tests) must not stack handlers
    for handler in list(root.handlers):
        root.removeHandler(handler)
        if isinstance(handler, logging.FileHandler):
            handler.close()
    root.setLevel(logging.DEBUG)

    file_fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    run_file_handler = logging.FileHandler(str(per_run_path), encoding="utf-8")
    run_file_handler.setLevel(logging.DEBUG)
    run_file_handler.setFormatter(file_fmt)
    root.addHandler(run_file_handler)

    aggregate_handler = RotatingFileHandler(
        str(aggregate_path), maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    aggregate_handler.setLevel(logging.DEBUG)
    aggregate_handler.setFormatter(file_fmt)
    root.addHandler(aggregate_handler)

    # GitPython logs every spawned git command at DEBUG
    logging.getLogger("git").setLevel(logging.INFO)

    if verbose or console_level:
        level_map = {
            "debug": logging.DEBUG,
            "info": logging.INFO,
            "warning": logging.WARNING,
            "error": logging.ERROR,
        }
        ch_level = level_map.get((console_level or "info").lower(), logging.INFO)
        console_handler = RichHandler(console=console, rich_tracebacks=True, show_path=False)
        console_handler.setLevel(ch_level)
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(console_handler)

    return aggregate_path


def _maybe_print_log_notice(verbose: bool, console_level: Optional[str], log_path: Path) -> None:
    """Point at the log file when console logging is off."""
    if verbose or console_level:
        return
    console.print(f"[dim]Logs are written to {log_path}. Use -v or --log-level to see them here.[/dim]")


def _fail(message: str, code: int, log_message: str) -> None:
    console.print(f"[bold red]error[/bold red]: {escape(message)}", highlight=False)
    logger.debug(log_message, exc_info=True)
    sys.exit(code)


@click.group()
@click.option(
    "--version",
    "-V",
    is_flag=True,
    callback=_print_version,
    expose_value=False,
    is_eager=True,
    help="Show version and exit.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose console logging (INFO)")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Console log level. By default, console logging is disabled.",
)
@click.option(
    "--repo-path",
    "-C",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Path inside the repository (defaults to current directory)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, log_level: Optional[str], repo_path: Optional[Path]) -> None:
    """Stackwalk - run a command on every commit of your branch stack."""
    log_path = setup_logging(verbose, console_level=log_level)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["console_level"] = log_level
    ctx.obj["log_path"] = log_path
    ctx.obj["repo_path"] = repo_path.resolve() if isinstance(repo_path, Path) else None
    logger.debug(f"CLI init: cwd={Path.cwd()} repo_path={ctx.obj['repo_path']}")


@cli.command(
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False}
)
@click.option(
    "--fail-fast/--no-fail-fast",
    "--ff/--no-ff",
    default=True,
    help="Stop descending past a commit whose command failed (default: on)",
)
@click.option("--switch", "-s", is_flag=True, help="Leave HEAD at the first failing commit")
@click.option(
    "--dry-run", "-n", is_flag=True, help="Run without checking out commits or stashing changes"
)
@click.option("--base", "base", metavar="REV", help="Use REV as the stack base instead of guessing")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_context
def run(
    ctx: click.Context,
    fail_fast: bool,
    switch: bool,
    dry_run: bool,
    base: Optional[str],
    command: Tuple[str, ...],
) -> None:
    """
    Run COMMAND on each commit of the current stack, parents first.

    Example: stackwalk run --no-fail-fast pytest -q
    """
    try:
        _maybe_print_log_notice(ctx.obj.get("verbose"), ctx.obj.get("console_level"), ctx.obj.get("log_path"))
        reporter = CliReporter(console)
        orchestrator = CascadeOrchestrator.from_path(ctx.obj.get("repo_path"), reporter)
        options = RunOptions(fail_fast=fail_fast, switch=switch, dry_run=dry_run, base=base)
        logger.info(f"stackwalk run {shlex.join(command)} ({options})")

        result = orchestrator.run(list(command), options)

        if result.success:
            logger.info(f"All {len(result.visited)} commits passed")
            return

        console.print(
            f"\n[bold red]{len(result.failures)} of {len(result.visited)} commits failed[/bold red]",
            highlight=False,
        )
        for failure in result.failures:
            console.print(
                f"  [bold]{escape(failure.label)}[/bold]: {escape(failure.result.describe())}",
                highlight=False,
            )
        if switch and not dry_run and result.final_position == result.first_failure:
            console.print(f"HEAD left at first failure ({escape(result.failures[0].label)})")
        sys.exit(EXIT_FAILURE)

    except UsageError as e:
        _fail(str(e), EXIT_USAGE, "Run aborted due to UsageError")
    except ConfigError as e:
        _fail(str(e), EXIT_CONFIG, "Run aborted due to ConfigError")
    except (GraphError, GitRepositoryError, StackError) as e:
        _fail(str(e), EXIT_FAILURE, "Run aborted due to StackError")
    except (click.Abort, KeyboardInterrupt):
        console.print("\n[bold yellow]Operation cancelled by user[/bold yellow]")
        logger.debug("Operation cancelled by user", exc_info=True)
        sys.exit(EXIT_INTERRUPTED)
    except Exception as e:
        console.print(f"\n[bold red]Unexpected error:[/bold red] {escape(str(e))}")
        if ctx.obj.get("verbose"):
            console.print_exception()
        logger.debug("Unexpected error during run", exc_info=True)
        sys.exit(EXIT_FAILURE)


@cli.command()
@click.option("--base", "base", metavar="REV", help="Use REV as the stack base instead of guessing")
@click.pass_context
def show(ctx: click.Context, base: Optional[str]) -> None:
    """Display the current stack and what a rewrite would do with each commit."""
    try:
        orchestrator = CascadeOrchestrator.from_path(ctx.obj.get("repo_path"), CliReporter(console))
        stack = orchestrator.build_stack(base, classify=True)
        stdout_console.print(_render_stack(stack))
    except UsageError as e:
        _fail(str(e), EXIT_USAGE, "show aborted due to UsageError")
    except ConfigError as e:
        _fail(str(e), EXIT_CONFIG, "show aborted due to ConfigError")
    except StackError as e:
        _fail(str(e), EXIT_FAILURE, "show aborted due to StackError")


@cli.command()
def version() -> None:
    """Print the current stackwalk version."""
    stdout_console.print(f"stackwalk {PACKAGE_VERSION}")


def _node_text(stack: StackSnapshot, commit_id: str) -> str:
    node = stack.graph.get(commit_id)
    parts = []
    if node.branches:
        parts.append(f"[bold]{escape(', '.join(node.branches))}[/bold]")
    parts.append(f"[yellow]{node.commit.short_hash}[/yellow]")
    parts.append(escape(node.commit.summary))
    style = _ACTION_STYLES.get(node.action.value, "white")
    parts.append(f"[{style}]({node.action.value})[/{style}]")
    if commit_id == stack.head_id:
        parts.append("[bold magenta]<- HEAD[/bold magenta]")
    return " ".join(parts)


def _render_stack(stack: StackSnapshot) -> Tree:
    """Build a rich Tree of the stack, root first."""
    tree = Tree(_node_text(stack, stack.merge_base), highlight=False)
    pending = [(tree, child) for child in reversed(stack.graph.children_of(stack.merge_base))]
    while pending:
        parent_branch, commit_id = pending.pop()
        branch = parent_branch.add(_node_text(stack, commit_id))
        pending.extend((branch, child) for child in reversed(stack.graph.children_of(commit_id)))
    return tree


def main() -> None:
    """Main entry point for the CLI."""
    try:
        rv = cli.main(standalone_mode=False)
    except click.UsageError as e:
        e.show()
        sys.exit(EXIT_USAGE)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except (click.Abort, KeyboardInterrupt):
        console.print("\n[bold yellow]Operation cancelled by user[/bold yellow]")
        logger.debug("Top-level cancellation", exc_info=True)
        sys.exit(EXIT_INTERRUPTED)
    except Exception as e:
        console.print(f"\n[bold red]Unexpected error:[/bold red] {escape(str(e))}")
        logger.debug("Unexpected error in main()", exc_info=True)
        sys.exit(EXIT_FAILURE)
    if isinstance(rv, int):
        sys.exit(rv)


if __name__ == "__main__":
    main()
