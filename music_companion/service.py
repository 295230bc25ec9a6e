"""music_companion service - polls the music source and serves the overlay feed."""

import asyncio
import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

import click
import uvicorn

from .config import Config, ConfigError
from .hub import BroadcastHub
from .poll_loop import PollLoop
from .renderer import ObserverRenderer, SyncStrategy
from .sources import UnknownSourceError, build_registry
from .tracker import StateTracker

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def setup_logging(log_dir: Path, log_level: str) -> logging.Logger:
    """
    Set up logging with file rotation.

    Args:
        log_dir: Directory for log files
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured logger
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "music_companion.log"

    logger = logging.getLogger("music_companion")
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    logger.handlers.clear()

    # File handler with daily rotation, keep 7 days
    file_handler = TimedRotatingFileHandler(
        log_file,
        when="midnight",
        interval=1,
        backupCount=7,
        encoding="utf-8",
    )
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(console_handler)

    return logger


def build_poll_loop(config: Config) -> PollLoop:
    """Wire sources, tracker and hub together from a Config."""
    registry = build_registry(config)
    tracker = StateTracker(config.timing())
    hub = BroadcastHub(send_timeout=config.send_timeout)
    return PollLoop(registry, tracker, hub, poll_timeout=config.poll_timeout)


def run_service(config: Config, verbose: bool = False) -> None:
    """
    Serve the gateway and poll the active source until interrupted.

    Both run on the same event loop; uvicorn handles SIGINT/SIGTERM and the
    application lifespan stops the poll loop on the way out.

    Args:
        config: Configuration instance
        verbose: Enable verbose logging
    """
    from .gateway import create_app

    log_level = "DEBUG" if verbose else config.log_level
    logger = setup_logging(config.get_log_dir(), log_level)
    logger.info("music_companion service starting")

    poll_loop = build_poll_loop(config)
    app = create_app(poll_loop, config)

    logger.info(f"Widget URL: http://{config.gateway_host}:{config.gateway_port}/widget")
    logger.info("Add the Widget URL as a Browser Source in OBS (recommended size 400x150)")

    uvicorn_config = uvicorn.Config(
        app,
        host=config.gateway_host,
        port=config.gateway_port,
        log_level="warning",  # Reduce uvicorn noise
        access_log=False,
    )
    uvicorn.Server(uvicorn_config).run()
    logger.info("music_companion service stopped")


def check_config(config: Config) -> bool:
    """
    Print the effective configuration.

    Args:
        config: Configuration instance

    Returns:
        True if valid
    """
    print(f"Log directory: {config.get_log_dir()}")
    print(f"Log level: {config.log_level}")
    print(f"Poll interval: {config.poll_interval_ms}ms")
    print(f"Jitter tolerance: {config.jitter_tolerance_ms}ms")
    print(f"Seek threshold: {config.seek_threshold_ms}ms")
    print(f"Poll timeout: {config.poll_timeout}s")
    print(f"Default source: {config.default_source}")
    print(f"Gateway: http://{config.gateway_host}:{config.gateway_port}")
    print(f"Spotify credentials: {'set' if config.spotify_client_id else 'not set'}")

    try:
        registry = build_registry(config)
    except UnknownSourceError:
        print(f"Unknown default source: {config.default_source}")
        return False
    print(f"Available sources: {', '.join(registry.names())}")
    return True


def _load_config(config_file: Optional[str]) -> Config:
    try:
        return Config.load(config_file)
    except ConfigError as e:
        raise click.ClickException(str(e))


@click.group()
@click.version_option(version="0.1.0", prog_name="music_companion_service")
def cli():
    """music_companion service - now-playing sync for OBS overlays."""
    pass


@cli.command()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option("--config", "-c", "config_file", help="Path to config file")
@click.option("--source", "-s", help="Source to poll (windows, macos, spotify)")
def run(verbose: bool, config_file: Optional[str], source: Optional[str]) -> None:
    """Run the sync service in foreground."""
    config = _load_config(config_file)
    if source:
        config.default_source = source
    try:
        run_service(config, verbose=verbose)
    except UnknownSourceError:
        raise click.ClickException(f"Unknown source: {config.default_source}")


@cli.command()
@click.option("--config", "-c", "config_file", help="Path to config file")
def check(config_file: Optional[str]) -> None:
    """Check configuration."""
    config = _load_config(config_file)
    if not check_config(config):
        raise SystemExit(1)


@cli.command()
@click.option("--url", "-u", default=None, help="WebSocket URL (default: from config)")
@click.option("--config", "-c", "config_file", help="Path to config file")
@click.option(
    "--drift-gated", is_flag=True,
    help="Re-sync only on track/state changes or drift beyond the seek threshold",
)
def watch(url: Optional[str], config_file: Optional[str], drift_gated: bool) -> None:
    """Follow the service from the terminal."""
    from .observer import watch as watch_server

    config = _load_config(config_file)
    url = url or f"ws://{config.gateway_host}:{config.gateway_port}/ws"
    renderer = ObserverRenderer(
        strategy=SyncStrategy.DRIFT_GATED if drift_gated else SyncStrategy.ALWAYS,
        seek_threshold_ms=config.seek_threshold_ms,
    )
    try:
        asyncio.run(watch_server(url, renderer))
    except KeyboardInterrupt:
        pass


def main():
    """Entry point for music_companion_service."""
    cli()


if __name__ == "__main__":
    main()
