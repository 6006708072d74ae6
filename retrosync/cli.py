"""CLI interface for RetroSync."""

import logging
import sys
from pathlib import Path
from typing import Any, Optional

import click

from .api import WebUploaderClient
from .availability import AvailabilityProbe
from .config import Config
from .exceptions import RetroSyncAPIError, RetroSyncConfigError, RetroSyncNotFoundError
from .output import OutputFormatter
from .sync import PathClassifier, SyncService
from .utils import format_size

logger = logging.getLogger(__name__)


def _load_config(ctx: Any) -> Config:
    """Resolve and validate the configuration, exiting on errors."""
    out: OutputFormatter = ctx.obj["out"]
    try:
        return Config.load(
            config_file=ctx.obj["config_file"],
            host=ctx.obj["host"],
            port=ctx.obj["port"],
            local_base_dir=ctx.obj["local_dir"],
        ).validate()
    except RetroSyncConfigError as e:
        out.error(str(e))
        ctx.exit(1)


def _make_service(ctx: Any, dry_run: bool = False) -> SyncService:
    return SyncService(_load_config(ctx), output=ctx.obj["out"], dry_run=dry_run)


@click.group()
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    envvar="RETROSYNC_CONFIG",
    help="JSON config file",
)
@click.option("--host", "-H", help="Remote host (default: $ATVHOST)")
@click.option("--port", "-p", type=int, help="Remote port (default: $ATVPORT or 80)")
@click.option(
    "--local-dir",
    "-l",
    type=click.Path(file_okay=False, path_type=Path),
    help="Local base directory (default: $LOCAL_BASE_DIR)",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="retrosync")
@click.pass_context
def main(
    ctx: Any,
    config_file: Optional[Path],
    host: Optional[str],
    port: Optional[int],
    local_dir: Optional[Path],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """RetroSync - two-way sync with a RetroArch web uploader."""
    ctx.ensure_object(dict)
    ctx.obj["config_file"] = config_file
    ctx.obj["host"] = host
    ctx.obj["port"] = port
    ctx.obj["local_dir"] = local_dir
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("retrosync").setLevel(logging.DEBUG)
        # httpx logs every request at INFO
        logging.getLogger("httpx").setLevel(logging.WARNING)
    else:
        logging.basicConfig(
            level=logging.WARNING,
            format="%(levelname)s: %(message)s",
        )


@main.command()
@click.option("--once", is_flag=True, help="Run a single two-way pass and exit")
@click.option(
    "--passes",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many two-way passes",
)
@click.option("--skip-backup", is_flag=True, help="Skip the backup-only phase")
@click.option("--dry-run", is_flag=True, help="Show what would be transferred")
@click.pass_context
def run(
    ctx: Any, once: bool, passes: Optional[int], skip_backup: bool, dry_run: bool
) -> None:
    """Back up once, then keep two-way paths in sync forever."""
    service = _make_service(ctx, dry_run=dry_run)
    try:
        service.run(max_passes=1 if once else passes, backup=not skip_backup)
    except KeyboardInterrupt:
        ctx.obj["out"].info("Interrupted, exiting.")
    finally:
        service.close()


@main.command()
@click.option("--dry-run", is_flag=True, help="Show what would be downloaded")
@click.pass_context
def backup(ctx: Any, dry_run: bool) -> None:
    """Run the backup-only phase once (remote -> local)."""
    out: OutputFormatter = ctx.obj["out"]
    service = _make_service(ctx, dry_run=dry_run)
    try:
        service.wait_until_available()
        stats = service.run_backup()
    finally:
        service.close()
    out.print_summary("Backup", stats)
    if stats["failures"]:
        ctx.exit(2)


@main.command()
@click.option("--dry-run", is_flag=True, help="Show what would be transferred")
@click.pass_context
def sync(ctx: Any, dry_run: bool) -> None:
    """Run a single two-way pass over all two-way paths."""
    out: OutputFormatter = ctx.obj["out"]
    service = _make_service(ctx, dry_run=dry_run)
    try:
        service.wait_until_available()
        stats = service.run_two_way_pass()
    finally:
        service.close()
    out.print_summary("Two-way pass", stats)
    if stats["failures"]:
        ctx.exit(2)


@main.command()
@click.argument("path", default="/")
@click.pass_context
def ls(ctx: Any, path: str) -> None:
    """List a remote directory, including archived entries."""
    out: OutputFormatter = ctx.obj["out"]
    config = _load_config(ctx)
    with WebUploaderClient(
        config.base_url,
        connect_timeout=config.connect_timeout,
        timeout=config.max_time,
    ) as client:
        try:
            rows = client.list_directory(path)
        except RetroSyncNotFoundError:
            out.error(f"Remote directory not found: {path}")
            ctx.exit(1)
        except RetroSyncAPIError as e:
            out.error(str(e))
            ctx.exit(1)

    table = []
    for row in sorted(rows, key=lambda r: str(r.get("name", ""))):
        size = row.get("size")
        is_dir = size is None or int(size) < 0
        table.append(
            [
                str(row.get("name", "")) + ("/" if is_dir else ""),
                "-" if is_dir else format_size(int(size)),
                str(row.get("path", "")),
            ]
        )
    out.output_table(["Name", "Size", "Path"], table, title=path)


@main.command()
@click.argument("paths", nargs=-1, required=True)
@click.pass_context
def classify(ctx: Any, paths: tuple[str, ...]) -> None:
    """Show how each remote PATH would be treated."""
    out: OutputFormatter = ctx.obj["out"]
    try:
        config = Config.load(
            config_file=ctx.obj["config_file"],
            local_base_dir=ctx.obj["local_dir"],
        )
    except RetroSyncConfigError as e:
        out.error(str(e))
        ctx.exit(1)
    classifier = PathClassifier(config.path_rules())
    out.output_table(
        ["Path", "Policy"],
        [[p, classifier.classify(p).value] for p in paths],
    )


@main.command()
@click.option(
    "--attempts",
    type=click.IntRange(min=1),
    default=None,
    help="Give up after this many attempts (default: wait forever)",
)
@click.pass_context
def wait(ctx: Any, attempts: Optional[int]) -> None:
    """Block until the remote host accepts connections."""
    out: OutputFormatter = ctx.obj["out"]
    config = _load_config(ctx)
    probe = AvailabilityProbe(
        config.host,
        config.port,
        interval=config.probe_interval,
        timeout=config.probe_timeout,
    )
    if probe.wait(max_attempts=attempts):
        out.success(f"{config.host}:{config.port} is reachable")
    else:
        out.error(f"{config.host}:{config.port} is not reachable")
        ctx.exit(1)


if __name__ == "__main__":
    sys.exit(main())
