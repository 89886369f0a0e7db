"""
CLI Command Handlers

Implementation of each subcommand. Handlers return an exit code.
"""

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

from rich.table import Table

from ..config import CONFIG_CATEGORIES, PipelineConfig, config
from ..diagnostics import console, enable_diagnostics, metrics

logger = logging.getLogger(__name__)

PREVIEW_WINDOW = "SceneCast"
STATUS_POLL_SECONDS = 1.0


def _setup_logging(args: argparse.Namespace):
    level = "DEBUG" if getattr(args, "debug", False) else config.get("SC_LOG_LEVEL", "INFO")
    enable_diagnostics(level=level, log_file=config.get("SC_LOG_FILE") or None)


def _pipeline_config(args: argparse.Namespace) -> PipelineConfig:
    """Env config, then the YAML file, then command line flags."""
    cfg = PipelineConfig.from_env()
    if getattr(args, "config", None):
        cfg = PipelineConfig.from_yaml(args.config, base=cfg)
    if getattr(args, "backend", None):
        cfg.backend = args.backend
    if getattr(args, "interval_ms", None) is not None:
        cfg.interval_ms = args.interval_ms
    if getattr(args, "ocr", False):
        cfg.ocr_enabled = True
    return cfg.validate()


# =============================================================================
# WATCH
# =============================================================================

def handle_watch(args: argparse.Namespace) -> int:
    """Handle the 'watch' command."""
    _setup_logging(args)
    cfg = _pipeline_config(args)
    return asyncio.run(_watch(cfg, args))


async def _watch(cfg: PipelineConfig, args: argparse.Namespace) -> int:
    from ..agent import ConsoleAgent, WebhookAgent, agent_update_handler
    from ..scheduler import AdaptiveScheduler
    from ..sources import OpenCVSource

    source = OpenCVSource(args.source)
    source.start()

    scheduler = AdaptiveScheduler.from_config(cfg)
    channel = WebhookAgent(args.webhook) if args.webhook else ConsoleAgent()
    stop = asyncio.Event()
    renderer = None

    console.print(
        f"[bold]SceneCast[/bold] watching [cyan]{args.source}[/cyan] "
        f"with [green]{cfg.backend}[/green] backend every {scheduler.interval_ms}ms"
    )
    if not scheduler.backend.is_ready:
        console.print(f"[yellow]⚠️  {scheduler.backend.last_error}[/yellow]")

    try:
        loop = asyncio.get_running_loop()
        if not await loop.run_in_executor(None, source.wait_ready, 10.0):
            console.print(f"[yellow]⚠️  No frames from {args.source} yet, waiting...[/yellow]")

        scheduler.start(lambda: source, on_update=agent_update_handler(channel))

        if args.overlay:
            renderer = _start_preview(cfg, source, scheduler, stop)

        await _wait(scheduler, stop, args.duration)
    finally:
        if renderer is not None:
            renderer.stop()
            await renderer.wait_closed()
            _close_preview()
        await scheduler.close()
        close = getattr(channel, "close", None)
        if close is not None:
            outcome = close()
            if asyncio.iscoroutine(outcome):
                await outcome
        source.stop()
        _report_metrics(args)

    return 0


def _report_metrics(args: argparse.Namespace):
    if getattr(args, "debug", False):
        metrics.print_summary()
    if getattr(args, "metrics", None):
        Path(args.metrics).write_text(metrics.export_json())
        logger.info(f"Metrics written to {args.metrics}")


async def _wait(scheduler, stop: asyncio.Event, duration: Optional[float]):
    """Block until stop is set or ``duration`` elapses, logging status changes."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + duration if duration else None
    last_status = ""

    while not stop.is_set():
        if scheduler.status != last_status:
            last_status = scheduler.status
            if last_status:
                console.print(f"[dim]{last_status}[/dim]")

        timeout = STATUS_POLL_SECONDS
        if deadline is not None:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            timeout = min(timeout, remaining)

        try:
            await asyncio.wait_for(stop.wait(), timeout)
        except asyncio.TimeoutError:
            pass


def _start_preview(cfg: PipelineConfig, source, scheduler, stop: asyncio.Event):
    import cv2

    from ..overlay import OverlayRenderer, composite

    renderer = OverlayRenderer(
        score_threshold=cfg.score_threshold,
        caption_max_chars=cfg.overlay_ocr_max_chars,
        fps=cfg.overlay_fps,
    )

    def show(canvas):
        frame = source.read()
        if frame is None:
            return
        cv2.imshow(PREVIEW_WINDOW, composite(frame, canvas))
        if cv2.waitKey(1) & 0xFF in (ord("q"), 27):
            stop.set()

    renderer.start(source, lambda: scheduler.latest_result, show)
    return renderer


def _close_preview():
    import cv2
    cv2.destroyAllWindows()


# =============================================================================
# DESCRIBE
# =============================================================================

def handle_describe(args: argparse.Namespace) -> int:
    """Handle the 'describe' command."""
    _setup_logging(args)
    cfg = _pipeline_config(args)
    return asyncio.run(_describe(cfg, args))


async def _describe(cfg: PipelineConfig, args: argparse.Namespace) -> int:
    from ..scheduler import AdaptiveScheduler
    from ..sources import StaticSource

    source = StaticSource.from_file(args.image)
    scheduler = AdaptiveScheduler.from_config(cfg)
    try:
        result = await scheduler.tick(source)
    finally:
        await scheduler.close()

    if result is None:
        console.print(f"[red]❌ {scheduler.status or 'No description'}[/red]")
        return 1

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(result.description)
    return 0


# =============================================================================
# CONFIG
# =============================================================================

def _is_secret(key: str) -> bool:
    return any(s in key.upper() for s in ("PASS", "KEY", "TOKEN", "SECRET"))


def handle_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    if args.get:
        print(f"{args.get}={config.get(args.get)}")
        return 0

    if args.set:
        key, value = args.set
        config.set(key, value)
        config.save()
        console.print(f"✅ Set {key}={value}")
        return 0

    table = Table(title="SceneCast Configuration")
    table.add_column("Category", style="cyan")
    table.add_column("Key", style="green")
    table.add_column("Value")
    table.add_column("Description", style="dim")

    for category, items in CONFIG_CATEGORIES.items():
        for key, _label, description in items:
            value = config.get(key, "")
            if _is_secret(key):
                value = "*" * len(value) if value else "(not set)"
            table.add_row(category, key, value, description)

    console.print(table)
    return 0
