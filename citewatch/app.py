"""Application wiring: configuration, database and monitoring components."""

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from citewatch.integrations.citation_api import CitationApiChecker
from citewatch.integrations.identity import IdentityResolver
from citewatch.integrations.serpapi_checker import SerpApiCitationChecker
from citewatch.monitoring import (
    BatchLock,
    EngineCheckOrchestrator,
    MonitoringBatch,
    Notifier,
    TransitionDetector,
)
from citewatch.stats import StatsAggregator
from citewatch.utils.rate_limiter import build_throttle

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/settings.yaml"

DEFAULTS: dict[str, Any] = {
    "monitoring": {
        "engines": ["google", "bing"],
        "backend": "serpapi",
        "reduction_strategy": "first_success",
        "engine_delay_seconds": 1.0,
        "entry_delay_seconds": 2.0,
        "lock_ttl_seconds": 3600,
    },
    "serpapi": {"requests_per_minute": 30, "timeout": 30, "max_retries": 3, "gl": "us", "hl": "en"},
    "endpoint": {"timeout": 60, "paths": {}},
    "identity": {"timeout": 15},
    "stats": {"lookback_days": 30, "top_queries_limit": 5, "recent_limit": 5},
    "scheduler": {"cron": "0 */6 * * *", "job_store": "sqlite:///data/scheduler_jobs.db", "timezone": "UTC"},
}


class CitationMonitorApp:
    """Central application class that wires together every component.

    Usage::

        app = CitationMonitorApp()
        app.initialize()
        summary = app.run_monitoring()
        stats = app.get_stats("user-1")
    """

    def __init__(
        self,
        config_path: str = DEFAULT_CONFIG_PATH,
        env_path: str = ".env",
    ):
        self._config_path = config_path
        self._env_path = env_path
        self.config: dict[str, Any] = {}
        self._initialized = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Load configuration and environment, then initialise the database."""
        if self._initialized:
            return

        env_file = Path(self._env_path)
        if env_file.exists():
            load_dotenv(env_file)
            logger.info("Loaded environment from %s", self._env_path)

        self.config = self._load_config()

        from citewatch.database import init_db
        db_cfg = self.config.get("database", {})
        db_url = os.getenv("DATABASE_URL") or db_cfg.get("url")
        init_db(database_url=db_url, echo=db_cfg.get("echo", False))

        self._initialized = True
        logger.info("CitationMonitorApp initialised.")

    def _load_config(self) -> dict[str, Any]:
        """Load the YAML configuration file merged over built-in defaults."""
        config: dict[str, Any] = {key: dict(value) for key, value in DEFAULTS.items()}
        config_file = Path(self._config_path)
        if not config_file.exists():
            logger.warning("Config file not found: %s, using defaults.", self._config_path)
            return config
        with open(config_file, "r", encoding="utf-8") as fh:
            loaded = yaml.safe_load(fh) or {}
        for section, values in loaded.items():
            if isinstance(values, dict):
                config.setdefault(section, {}).update(values)
            else:
                config[section] = values
        logger.info("Configuration loaded from %s", self._config_path)
        return config

    def section(self, name: str) -> dict[str, Any]:
        return self.config.get(name) or DEFAULTS.get(name, {})

    # ------------------------------------------------------------------
    # Component factories
    # ------------------------------------------------------------------

    def build_checker(self):
        """Return the configured check capability."""
        backend = self.section("monitoring").get("backend", "serpapi")
        if backend == "serpapi":
            cfg = self.section("serpapi")
            return SerpApiCitationChecker(
                requests_per_minute=cfg.get("requests_per_minute", 30),
                timeout=cfg.get("timeout", 30),
                max_retries=cfg.get("max_retries", 3),
                gl=cfg.get("gl", "us"),
                hl=cfg.get("hl", "en"),
            )
        if backend == "endpoint":
            cfg = self.section("endpoint")
            return CitationApiChecker(
                base_url=cfg.get("base_url") or None,
                engine_paths=cfg.get("paths") or None,
                timeout=cfg.get("timeout", 60),
            )
        raise RuntimeError(f"Unknown check backend: {backend!r}")

    def build_identity_resolver(self) -> Optional[IdentityResolver]:
        resolver = IdentityResolver(timeout=self.section("identity").get("timeout", 15))
        if not resolver.configured:
            logger.info("IDENTITY_API_URL not set; notifications are stored without contact lookup.")
            return None
        return resolver

    def build_batch(self, check=None) -> MonitoringBatch:
        mon = self.section("monitoring")
        orchestrator = EngineCheckOrchestrator(
            check=check or self.build_checker(),
            engines=mon.get("engines", ["google", "bing"]),
            throttle=build_throttle(mon.get("engine_delay_seconds", 1.0), name="engines"),
            strategy=mon.get("reduction_strategy", "first_success"),
        )
        return MonitoringBatch(
            orchestrator=orchestrator,
            detector=TransitionDetector(),
            notifier=Notifier(self.build_identity_resolver()),
            entry_throttle=build_throttle(mon.get("entry_delay_seconds", 2.0), name="entries"),
            lock=BatchLock(ttl_seconds=int(mon.get("lock_ttl_seconds", 3600))),
        )

    def build_stats_aggregator(self) -> StatsAggregator:
        cfg = self.section("stats")
        return StatsAggregator(
            engines=self.section("monitoring").get("engines", ["google", "bing"]),
            lookback_days=cfg.get("lookback_days", 30),
            top_queries_limit=cfg.get("top_queries_limit", 5),
            recent_limit=cfg.get("recent_limit", 5),
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def run_monitoring(self) -> dict[str, Any]:
        """Run one monitoring batch and return its JSON summary."""
        self._ensure_initialized()
        try:
            batch = self.build_batch()
        except Exception as exc:
            logger.error("Automated monitoring error: %s", exc)
            return {"success": False, "error": str(exc)}
        return asyncio.run(batch.run())

    def get_stats(self, user_id: str) -> dict[str, Any]:
        self._ensure_initialized()
        return self.build_stats_aggregator().get_stats(user_id)

    def get_status(self) -> dict[str, dict[str, Any]]:
        """Return health status of the database, backend and configuration."""
        self._ensure_initialized()
        status: dict[str, dict[str, Any]] = {}

        try:
            from sqlalchemy import func
            from citewatch.database import get_session
            from citewatch.models import MonitoringEntry
            with get_session() as session:
                active = (
                    session.query(func.count(MonitoringEntry.id))
                    .filter(MonitoringEntry.is_active.is_(True))
                    .scalar()
                )
            status["database"] = {"status": "ok", "details": f"{active} active entries"}
        except Exception as exc:
            status["database"] = {"status": "error", "details": str(exc)}

        backend = self.section("monitoring").get("backend", "serpapi")
        if backend == "serpapi":
            configured = bool(os.getenv("SERPAPI_KEY"))
        else:
            configured = bool(self.section("endpoint").get("base_url") or os.getenv("CITATION_API_URL"))
        status["backend"] = {
            "status": "ok" if configured else "warning",
            "details": f"{backend} ({'configured' if configured else 'not configured'})",
        }

        status["identity"] = {
            "status": "ok" if os.getenv("IDENTITY_API_URL") else "warning",
            "details": "contact lookup enabled" if os.getenv("IDENTITY_API_URL") else "in-app only",
        }
        status["config"] = {
            "status": "ok" if Path(self._config_path).exists() else "warning",
            "details": self._config_path,
        }
        return status

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError("Call initialize() before using the application.")


def run_monitoring_job(config_path: str = DEFAULT_CONFIG_PATH, env_path: str = ".env") -> dict[str, Any]:
    """Scheduler entry point: build a fresh app and run one batch."""
    app = CitationMonitorApp(config_path=config_path, env_path=env_path)
    app.initialize()
    summary = app.run_monitoring()
    logger.info("Scheduled monitoring run finished: %s", summary)
    return summary
