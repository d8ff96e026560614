# src/meshinventory/cli.py
"""Inventory CLI - cluster snapshot collection and checksum tooling."""

import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional

import click
import structlog

from meshinventory.config.settings import SchedulingMode, Settings
from meshinventory.collection.orchestrator import InventoryOrchestrator
from meshinventory.core.exceptions import InventoryException
from meshinventory.core.utils import setup_logging
from meshinventory.integrity import find_files, generate_checksums, verify_checksums

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_PARTIAL = 2


class ProgressReporter:
    """Feeds ``(current, total)`` updates into a click progress bar."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._bar = None
        self._shown = 0

    def __call__(self, current: int, total: int) -> None:
        if not self.enabled or total == 0:
            return
        if self._bar is None:
            self._bar = click.progressbar(
                length=total, label="Collecting", file=click.get_text_stream('stderr')
            )
            self._bar.__enter__()
        self._bar.update(current - self._shown)
        self._shown = current

    def close(self) -> None:
        if self._bar is not None:
            self._bar.__exit__(None, None, None)
            self._bar = None


def build_config(settings: Settings, **overrides) -> dict:
    """Merge CLI overrides onto the settings loaded from env/.env."""
    config = settings.model_dump(mode="json")
    for key in ("obfuscate", "resume"):
        if overrides.get(key):
            config[key] = True
    if overrides.get("context"):
        config["kubernetes"]["context"] = overrides["context"]
    if overrides.get("kubeconfig"):
        config["kubernetes"]["kubeconfig_path"] = overrides["kubeconfig"]
    if overrides.get("output"):
        config["storage"]["output_path"] = overrides["output"]
    for key in ("max_workers", "scheduling", "timeout_seconds"):
        if overrides.get(key) is not None:
            config["collection"][key] = overrides[key]
    if overrides.get("mesh_only"):
        config["collection"]["mesh_only"] = True
    return config


@click.group()
def main():
    """Kubernetes mesh resource inventory."""


@main.command()
@click.option('--context', '-c', default=None, help='Kubernetes context to collect (default: current context)')
@click.option('--kubeconfig', default=None, type=click.Path(dir_okay=False), help='Path to kubeconfig file')
@click.option('--output', '-o', default=None, help='Snapshot JSON file path (default: cluster_info.json)')
@click.option('--hide-cluster-names', '-h', 'obfuscate', is_flag=True,
              help='Replace cluster, node and namespace names with SHA-256 digests')
@click.option('--resume', '-r', is_flag=True, help='Keep entries from an existing output file and collect only the rest')
@click.option('--workers', 'max_workers', type=click.IntRange(min=1), default=None,
              help='Parallel workers (default: CPU cores, capped)')
@click.option('--scheduling', type=click.Choice([m.value for m in SchedulingMode]), default=None,
              help='completion: refill slots as jobs finish; batch: wait for each full batch')
@click.option('--mesh-only', is_flag=True, help='Only collect mesh-injected namespaces')
@click.option('--timeout', 'timeout_seconds', type=click.IntRange(min=1), default=None,
              help='Timeout in seconds for a single node or namespace')
@click.option('--no-progress', is_flag=True, help='Disable the progress bar')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.option('--debug', is_flag=True, help='Enable debug logging')
def gather(context, kubeconfig, output, obfuscate, resume, max_workers, scheduling, mesh_only,
           timeout_seconds, no_progress, verbose, debug):
    """
    Collect a resource snapshot of one cluster context.

    Records node capacity and usage, and per-namespace pod counts with
    requested (and, when metrics-server is available, actual) CPU and memory
    split between application containers and mesh sidecars.

    Failed namespaces or nodes are left out of the snapshot; re-run with
    --resume to retry only those.

    Example:
        meshinventory gather --context prod-eu -o cluster_info.json --hide-cluster-names
    """
    settings = Settings.create_from_env()
    log_level = "DEBUG" if debug or settings.debug else settings.log_level.value
    setup_logging(config_path=settings.log_config_path, log_level=log_level, log_format=settings.log_format)

    config = build_config(
        settings,
        context=context,
        kubeconfig=kubeconfig,
        output=output,
        obfuscate=obfuscate,
        resume=resume,
        max_workers=max_workers,
        scheduling=scheduling,
        timeout_seconds=timeout_seconds,
        mesh_only=mesh_only
    )

    progress = ProgressReporter(enabled=not no_progress)

    async def run_inventory() -> int:
        try:
            async with InventoryOrchestrator(config, progress=progress) as orchestrator:
                _install_stop_handlers(orchestrator)
                if verbose:
                    click.echo(f"Cluster: {orchestrator.client.cluster_name}")
                    click.echo(f"Metrics API: {'available' if orchestrator.has_metrics else 'unavailable'}")
                    click.echo(f"Workers: {orchestrator.coordinator.max_workers} ({orchestrator.coordinator.scheduling.value})")
                summary = await orchestrator.run_inventory()
        except InventoryException as e:
            click.echo(f"Error: {e.message}", err=True)
            return EXIT_FATAL
        except Exception as e:
            click.echo(f"Inventory failed: {e}", err=True)
            if debug:
                import traceback
                click.echo(traceback.format_exc(), err=True)
            return EXIT_FATAL
        finally:
            progress.close()

        click.echo(f"Snapshot written to: {summary['output_path']}")
        click.echo(f"  Nodes: {summary['nodes']}")
        click.echo(f"  Namespaces: {summary['namespaces']}")
        click.echo(f"  Metrics: {'yes' if summary['has_metrics'] else 'no'}")
        if summary['skipped']:
            click.echo(f"  Reused from checkpoint: {summary['skipped']}")

        if summary['failed'] or summary['pending']:
            for item in summary['failed']:
                click.echo(f"  Failed {item['kind']} {item['name']}: {item['error']}", err=True)
            if summary['pending']:
                click.echo(f"  Not started: {len(summary['pending'])}", err=True)
            click.echo("Re-run with --resume to retry only the missing entries.", err=True)
            return EXIT_PARTIAL
        return EXIT_OK

    sys.exit(asyncio.run(run_inventory()))


def _install_stop_handlers(orchestrator: InventoryOrchestrator) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, orchestrator.request_stop)
        except (NotImplementedError, RuntimeError):
            # not supported on this platform or outside the main thread
            pass


@main.group()
def checksum():
    """Generate or verify .sha256 files."""


@checksum.command('generate')
@click.argument('root', default='.', type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option('--pattern', default='*.json', show_default=True, help='Glob of files to checksum')
@click.option('--exclude', default=None, envvar='EXCLUDE_PATTERN', help='Glob (relative to ROOT) to skip')
def checksum_generate(root: Path, pattern: str, exclude: Optional[str]):
    """Write a .sha256 file next to every matching file under ROOT."""
    for path in find_files(root, pattern, exclude):
        click.echo(f"Creating checksum for {path}")
        generate_checksums([path])
    click.echo("All checksums generated successfully")


@checksum.command('verify')
@click.argument('root', default='.', type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option('--pattern', default='*.json', show_default=True, help='Glob of files to verify')
@click.option('--exclude', default=None, envvar='EXCLUDE_PATTERN', help='Glob (relative to ROOT) to skip')
def checksum_verify(root: Path, pattern: str, exclude: Optional[str]):
    """Check every matching file under ROOT against its .sha256 file."""
    errors = 0
    for result in verify_checksums(find_files(root, pattern, exclude)):
        click.echo(result.describe())
        if not result.ok:
            errors += 1

    if errors:
        click.echo(f"Checksum verification failed with {errors} errors")
        sys.exit(EXIT_FATAL)
    click.echo("All checksums verified successfully")


if __name__ == '__main__':
    main()
