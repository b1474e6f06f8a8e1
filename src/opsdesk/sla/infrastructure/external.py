"""
SLA External Service Integrations
==================================

Runtime collaborators of the SLA module:
- YAML config file watcher (hot reload)
- APScheduler for the periodic status refresh
"""

import threading
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from opsdesk.core.exceptions import ConfigurationException
from opsdesk.shared.infrastructure.logging import get_logger
from opsdesk.sla.application.services import ISLAConfigProvider
from opsdesk.sla.domain.value_objects import SLAConfig

logger = get_logger(__name__)

ReloadCallback = Callable[[SLAConfig], None]


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for SLA config file changes."""

    def __init__(self, config_manager: "SLAConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path.resolve()
        super().__init__()

    def _matches(self, path: str) -> bool:
        return Path(path).resolve() == self.config_path

    def on_modified(self, event):
        """Handle file modification event."""
        if event.is_directory:
            return
        if self._matches(event.src_path):
            logger.info("SLA config file changed", extra={"path": event.src_path})
            self.config_manager.reload()

    def on_moved(self, event):
        """Editors that save atomically rename a temp file over the config."""
        if event.is_directory:
            return
        if self._matches(event.dest_path):
            logger.info("SLA config file replaced", extra={"path": event.dest_path})
            self.config_manager.reload()


class SLAConfigManager(ISLAConfigProvider):
    """
    Thread-safe SLA configuration manager with hot-reload support.

    Uses watchdog to monitor file changes and reload configuration
    without restarting the service. Reload callbacks run after every
    successful reload; the policy cache registers one to drop stale
    lookups.
    """

    def __init__(self):
        self._config: Optional[SLAConfig] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None
        self._callbacks: List[ReloadCallback] = []

    def load(self, path: Path) -> SLAConfig:
        """
        Initial configuration load.

        Raises:
            ConfigurationException: File exists but is not a valid config
        """
        self._path = Path(path)
        config = self._load_from_file(self._path)
        with self._lock:
            self._config = config
        logger.info(
            "SLA configuration loaded",
            extra={
                "path": str(self._path),
                "policies": len(config.policies),
                "at_risk_threshold_percent": config.at_risk_threshold_percent
            }
        )
        return config

    def _load_from_file(self, path: Path) -> SLAConfig:
        """Load and parse YAML config file."""
        if not path.exists():
            logger.warning("SLA config file not found, using defaults", extra={"path": str(path)})
            return SLAConfig()

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
            return SLAConfig(**data)
        except (yaml.YAMLError, ValidationError, TypeError) as e:
            raise ConfigurationException(
                f"Invalid SLA config file: {path}",
                {"path": str(path), "error": str(e)}
            ) from e

    def reload(self) -> bool:
        """
        Reload configuration from file.

        A broken file keeps the previous configuration in place.
        """
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except ConfigurationException as e:
            logger.error(
                "Failed to reload SLA config",
                extra={"path": str(self._path), "error": e.details.get("error")}
            )
            return False

        with self._lock:
            self._config = new_config
            callbacks = list(self._callbacks)

        for callback in callbacks:
            try:
                callback(new_config)
            except Exception as e:
                logger.error(
                    "SLA config reload callback failed",
                    extra={"callback": getattr(callback, "__name__", repr(callback)), "error": str(e)}
                )

        logger.info("SLA configuration reloaded successfully")
        return True

    def add_reload_callback(self, callback: ReloadCallback) -> None:
        """Register a function called with the new config after each reload."""
        with self._lock:
            self._callbacks.append(callback)

    def start_watching(self) -> None:
        """
        Start watching configuration file for changes.

        Skips watching if:
        - File doesn't exist (production environments often use env vars)
        - Running in a containerized environment where inotify doesn't work
        """
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                "SLA config file doesn't exist, skipping file watch",
                extra={"path": str(self._path)}
            )
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(
                handler,
                str(self._path.resolve().parent),
                recursive=False
            )
            self._observer.start()
            logger.info("Started watching SLA config file", extra={"path": str(self._path)})
        except OSError as e:
            # File watching not supported (e.g., in Docker containers)
            logger.warning("File watching not available, using static config", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching configuration file (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def config(self) -> SLAConfig:
        """Get current configuration."""
        with self._lock:
            if self._config is None:
                raise RuntimeError("SLA configuration not loaded")
            return self._config

    def get_config(self) -> SLAConfig:
        return self.config


class SLAScheduler:
    """
    Wrapper for APScheduler for the periodic SLA status refresh.

    Manages the lifecycle of the scheduler and jobs.
    """

    JOB_ID = "sla_status_refresh"

    def __init__(self, interval_seconds: int = 300):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[None]]) -> None:
        """Start the scheduler with the given job function."""
        if self._running:
            logger.warning("SLA scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()

        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id=self.JOB_ID,
            name="SLA Status Refresh Job",
            misfire_grace_time=60,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        self._scheduler.start()
        self._running = True

        logger.info(
            "SLA scheduler started",
            extra={"interval_seconds": self.interval_seconds}
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._running = False
        logger.info("SLA scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running
