"""CLI entry point: command definitions using Click.

Commands:
    init       Generate a template config file
    run        Run the gate: compare on feature refs, publish on the baseline branch
    parse      Print the coverage embedded in a badge file
    compare    Classify a baseline -> current coverage change
    plan       Show what `run` would upload/delete on the baseline branch
"""

import json
import logging
import signal
import sys
import threading
from typing import Any

import click

from covgate import __version__


# ---------------------------------------------------------------------------
# Helpers shared by all data commands
# ---------------------------------------------------------------------------

def _load_config(ctx: click.Context):
    """Load config from --config and the environment. Exits on error."""
    from covgate.config import ConfigError, load
    from covgate.pipeline import EXIT_CONFIG

    try:
        return load(ctx.obj["config_path"])
    except ConfigError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        sys.exit(EXIT_CONFIG)


def _emit_json(data: Any, ctx: click.Context) -> None:
    """Write JSON to stdout or to the file specified by --output."""
    obj = ctx.obj
    indent = 2 if obj["pretty"] else None
    text = json.dumps(data, indent=indent, ensure_ascii=False)

    output_path: str | None = obj["output_path"]
    if output_path:
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(text)
        click.echo(f"Report written to '{output_path}'", err=True)
    else:
        click.echo(text)


def _handle_errors(func):
    """Decorator that catches gate exceptions and exits cleanly."""
    import functools

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        from covgate.client import (
            AuthenticationError,
            ClientError,
            NetworkError,
            NotFoundError,
        )
        from covgate.config import ConfigError
        from covgate.pipeline import EXIT_CONFIG, EXIT_FAILED
        from covgate.publisher import PublishError
        from covgate.reports.badge import ParseError

        try:
            return func(*args, **kwargs)
        except ConfigError as exc:
            click.echo(f"Configuration error: {exc}", err=True)
            sys.exit(EXIT_CONFIG)
        except ParseError as exc:
            click.echo(f"Parse error: {exc}", err=True)
            sys.exit(EXIT_FAILED)
        except AuthenticationError as exc:
            click.echo(f"Authentication error: {exc}", err=True)
            sys.exit(EXIT_FAILED)
        except NotFoundError as exc:
            click.echo(f"Not found: {exc}", err=True)
            sys.exit(EXIT_FAILED)
        except NetworkError as exc:
            click.echo(f"Network error: {exc}", err=True)
            sys.exit(EXIT_FAILED)
        except ClientError as exc:
            click.echo(f"Remote error: {exc}", err=True)
            sys.exit(EXIT_FAILED)
        except PublishError as exc:
            click.echo(f"Publish error: {exc}", err=True)
            sys.exit(EXIT_FAILED)

    return wrapper


def _install_cancel_handlers(cancel: threading.Event) -> dict:
    """Set *cancel* on SIGINT/SIGTERM; return the previous handlers."""
    previous = {}

    def handler(signum, _frame):
        logging.getLogger(__name__).warning("Received signal %d, cancelling", signum)
        cancel.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            previous[sig] = signal.signal(sig, handler)
        except ValueError:
            # Not in the main thread; cancellation stays available programmatically.
            pass
    return previous


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------

@click.group()
@click.option("--config", "config_path", default=None,
              help="Path to a YAML configuration file (environment variables override it).")
@click.option("--output", "output_path", default=None,
              help="Write JSON output to a file instead of stdout.")
@click.option("--pretty", is_flag=True, default=False,
              help="Pretty-print the JSON output.")
@click.option("--verbose", is_flag=True, default=False,
              help="Enable debug logging.")
@click.version_option(__version__, prog_name="covgate")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, output_path: str | None,
        pretty: bool, verbose: bool) -> None:
    """Coverage regression gate: compare against the baseline badge, publish reports."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["output_path"] = output_path
    ctx.obj["pretty"] = pretty
    ctx.obj["verbose"] = verbose
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------

@cli.command("init")
@click.option("--output", "output_path", default="covgate.yaml", show_default=True,
              help="Path where the template config file will be written.")
def init_command(output_path: str) -> None:
    """Generate a template covgate.yaml file."""
    from covgate.config import ConfigError, generate_template
    from covgate.pipeline import EXIT_CONFIG
    try:
        generate_template(output_path)
        click.echo(f"Template written to '{output_path}'.")
        click.echo("Edit it with your repository, bucket and badge settings.")
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(EXIT_CONFIG)


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------

@cli.command("run")
@click.option("--ref", "ref_name", default=None,
              help="Current branch/ref name (overrides GITHUB_REF_NAME).")
@click.option("--baseline-branch", default=None,
              help="Branch whose published badge is the baseline (default: main).")
@click.pass_context
def run_command(ctx: click.Context, ref_name: str | None, baseline_branch: str | None) -> None:
    """Run the gate and exit with its status code (0 done, 1 failed, 2 config, 130 cancelled)."""
    from covgate.pipeline import GatePipeline

    config = _load_config(ctx)
    if ref_name:
        config.run.ref_name = ref_name
    if baseline_branch:
        config.run.baseline_branch = baseline_branch

    cancel = threading.Event()
    previous = _install_cancel_handlers(cancel)
    try:
        result = GatePipeline(config, cancel=cancel).run()
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    _emit_json(result.to_dict(), ctx)
    if result.error:
        click.echo(f"Gate failed: {result.error}", err=True)
    sys.exit(result.exit_code)


# ---------------------------------------------------------------------------
# parse
# ---------------------------------------------------------------------------

@cli.command("parse")
@click.argument("badge", type=click.Path(dir_okay=False))
@click.pass_context
@_handle_errors
def parse_command(ctx: click.Context, badge: str) -> None:
    """Print the coverage percentage embedded in BADGE."""
    from covgate.reports.badge import load_local_report

    report = load_local_report(badge)
    _emit_json({"badge": badge, **report.to_dict()}, ctx)


# ---------------------------------------------------------------------------
# compare
# ---------------------------------------------------------------------------

@cli.command("compare")
@click.argument("baseline")
@click.argument("current")
@click.option("--tolerance", default="0", show_default=True,
              help="Changes within +/- this many points count as unchanged.")
@click.pass_context
@_handle_errors
def compare_command(ctx: click.Context, baseline: str, current: str, tolerance: str) -> None:
    """Classify the change from BASELINE to CURRENT percent."""
    from covgate.reports.regression import evaluate

    try:
        verdict = evaluate(baseline, current, tolerance)
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    _emit_json(verdict.to_dict(), ctx)


# ---------------------------------------------------------------------------
# plan
# ---------------------------------------------------------------------------

@cli.command("plan")
@click.pass_context
@_handle_errors
def plan_command(ctx: click.Context) -> None:
    """Show the uploads/deletes `run` would perform on the baseline branch."""
    from covgate.config import Mode
    from covgate.pipeline import build_retry_policy, build_store
    from covgate.publisher import ReportPublisher

    config = _load_config(ctx)
    # The preview is always of a baseline-branch publish.
    config.run.ref_name = config.run.ref_name or config.run.baseline_branch
    config.validate_for(Mode.PUBLISH)

    if ctx.obj["verbose"]:
        click.echo(
            f"[verbose] Listing s3://{config.artifacts.bucket}/{config.artifacts.prefix}",
            err=True,
        )

    plan = ReportPublisher(build_store(config), build_retry_policy(config)).plan(
        config.run.report_dir, config.artifacts.prefix
    )
    _emit_json(plan.to_dict(), ctx)
