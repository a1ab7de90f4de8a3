"""Application initialization orchestrator."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import Optional

from prometheus_client import start_http_server

from config import Config, load_config
from core.logger import get_logger
from database import close_db_pool, init_db_pool, run_migrations
from services.cache import init_cache
from services.engine import PromotionEngine
from utils.performance import EngineMetrics

logger = get_logger(__name__)


class ApplicationInitializer:
    """Orchestrates application initialization and lifecycle."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or load_config()
        self.db_pool = None
        self.cache = None
        self.engine: Optional[PromotionEngine] = None
        self.metrics = EngineMetrics()

    async def initialize(self) -> PromotionEngine:
        """Initialize all application components."""
        await self._init_database()
        self._init_cache()
        self._init_metrics_endpoint()
        self.engine = PromotionEngine(config=self.config, cache=self.cache, metrics=self.metrics)
        logger.info("Promotion engine ready")
        return self.engine

    async def run(self) -> None:
        """Run the lifecycle sweep until cancelled."""
        if self.engine is None:
            await self.initialize()
        await self.engine.sweeper.start()
        try:
            while True:
                await asyncio.sleep(3600)
        finally:
            await self.cleanup()

    async def cleanup(self) -> None:
        """Cleanup resources."""
        with suppress(Exception):
            if self.engine:
                await self.engine.sweeper.stop()
        with suppress(Exception):
            await close_db_pool()
        logger.info("Application stopped")

    async def _init_database(self) -> None:
        """Initialize database pool and run migrations."""
        self.db_pool = await init_db_pool(
            database_path=self.config.database_path,
            pool_size=self.config.db_pool_size,
            busy_timeout_ms=self.config.db_busy_timeout,
        )
        await run_migrations(self.db_pool)
        self.metrics.record_db_pool(self.config.db_pool_size)
        logger.info("Database initialized")

    def _init_cache(self) -> None:
        """Initialize cache service."""
        self.cache = init_cache(
            hot_ttl=self.config.cache_ttl_hot,
            warm_ttl=self.config.cache_ttl_warm,
            cold_ttl=self.config.cache_ttl_cold,
        )
        logger.info("Cache initialized")

    def _init_metrics_endpoint(self) -> None:
        """Expose Prometheus metrics when a port is configured."""
        if self.config.prometheus_port > 0:
            start_http_server(self.config.prometheus_port)
            logger.info(f"Metrics exposed on port {self.config.prometheus_port}")
