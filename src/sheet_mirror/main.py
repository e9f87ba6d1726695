"""Main application entry point."""

import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime, timezone

from aiohttp import web, web_runner

from .config.settings import AppSettings, get_settings
from .utils.logging import setup_logging, get_logger
from .database import init_database, close_database
from .database.service import DatabaseService
from .api_clients import GoogleDriveClient, GoogleSheetsClient
from .core import ChangeDetector, RecordSync, SyncOrchestrator
from .destination import FTPDestination
from .scheduler import MirrorScheduler


class SheetMirrorApp:
    """Main Sheet Mirror application."""

    def __init__(self, settings: Optional[AppSettings] = None):
        """Initialize the application."""
        self.settings = settings or get_settings()
        self.logger = get_logger("SheetMirror")
        self.running = False
        self.started_at: Optional[datetime] = None
        self.web_app: Optional[web.Application] = None
        self.web_runner: Optional[web_runner.AppRunner] = None
        self.db_service: Optional[DatabaseService] = None
        self.orchestrator: Optional[SyncOrchestrator] = None
        self.scheduler: Optional[MirrorScheduler] = None

    async def startup(self):
        """Application startup."""
        settings = self.settings
        self.logger.info(
            "Starting Sheet Mirror",
            version=settings.version,
            environment=settings.environment
        )

        Path("./logs").mkdir(exist_ok=True)

        await self._setup_web_server()

        init_database(settings.database.url, create_tables=True)
        self.db_service = DatabaseService()

        sheets = GoogleSheetsClient(settings.sheet.id, google_settings=settings.google)
        drive = GoogleDriveClient(google_settings=settings.google)

        self.orchestrator = SyncOrchestrator(
            detector=ChangeDetector(sheets, settings.sheet.range),
            source=drive,
            destination_factory=lambda: FTPDestination(settings.ftp),
            ftp_settings=settings.ftp,
            max_concurrent_rows=settings.scheduling.max_concurrent_rows,
            max_retries=settings.scheduling.max_retries,
            retry_backoff_seconds=settings.scheduling.retry_backoff_seconds,
            database_service=self.db_service
        )

        record_sync = None
        if settings.sheet.records_enabled:
            record_sync = RecordSync(
                sheets,
                self.db_service,
                cell_range=settings.sheet.records_range,
                collection=settings.sheet.records_collection
            )

        self.scheduler = MirrorScheduler(
            self.orchestrator,
            record_sync=record_sync,
            interval_minutes=settings.scheduling.sync_interval_minutes
        )
        await self.scheduler.start()

        self.running = True
        self.started_at = datetime.now(timezone.utc)
        self.logger.info("Sheet Mirror started successfully")

    async def shutdown(self):
        """Application shutdown."""
        self.logger.info("Shutting down Sheet Mirror")
        self.running = False

        if self.scheduler:
            await self.scheduler.stop(wait=False)

        await self._stop_web_server()

        try:
            close_database()
        except Exception as e:
            self.logger.warning("Error closing database", error=str(e))

        if self.orchestrator:
            self.orchestrator.scratch.cleanup()

        self.logger.info("Sheet Mirror stopped")

    async def run(self):
        """Run the main application loop."""
        await self.startup()

        try:
            while self.running:
                await asyncio.sleep(1)
        finally:
            await self.shutdown()

    async def _setup_web_server(self):
        """Set up web server for health checks and status."""
        self.web_app = web.Application()
        self.web_app.router.add_get('/health', self._health_handler)
        self.web_app.router.add_get('/status', self._status_handler)

        self.web_runner = web_runner.AppRunner(self.web_app)
        await self.web_runner.setup()

        site = web_runner.TCPSite(self.web_runner, self.settings.host, self.settings.port)
        await site.start()

        self.logger.info("Web server started", host=self.settings.host, port=self.settings.port)

    async def _stop_web_server(self):
        """Stop web server."""
        if self.web_runner:
            await self.web_runner.cleanup()
            self.web_runner = None
            self.logger.info("Web server stopped")

    async def _health_handler(self, request):
        """Health check endpoint."""
        uptime = 0.0
        if self.started_at:
            uptime = (datetime.now(timezone.utc) - self.started_at).total_seconds()

        health_data = {
            "status": "healthy" if self.running else "unhealthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": self.settings.version,
            "environment": self.settings.environment,
            "uptime_seconds": uptime
        }

        status_code = 200 if self.running else 503
        return web.json_response(health_data, status=status_code)

    async def _status_handler(self, request):
        """Detailed status endpoint."""
        last_run = None
        if self.orchestrator and self.orchestrator.last_summary:
            last_run = self.orchestrator.last_summary.to_dict()
            last_run["completed_at"] = self.orchestrator.last_run_at.isoformat()

        jobs = {}
        if self.scheduler:
            jobs = self.scheduler.get_job_statuses()

        status_data = {
            "application": {
                "name": self.settings.name,
                "version": self.settings.version,
                "environment": self.settings.environment,
                "running": self.running,
                "timestamp": datetime.now(timezone.utc).isoformat()
            },
            "components": {
                "scheduler": "running" if self.scheduler and self.scheduler.running else "stopped",
                "sync_in_progress": bool(self.orchestrator and self.orchestrator.running)
            },
            "last_run": last_run,
            "jobs": jobs
        }

        return web.json_response(status_data, dumps=_dumps)


def _dumps(data) -> str:
    return json.dumps(data, default=_json_default)


def _json_default(value):
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def setup_signal_handlers(app: SheetMirrorApp):
    """Set up signal handlers for graceful shutdown."""
    def signal_handler(signum, frame):
        app.logger.info("Received signal", signum=signum)
        app.running = False

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


async def main():
    """Main entry point."""
    settings = get_settings()
    setup_logging(
        log_level=settings.logging.level,
        log_format=settings.logging.format,
        log_file=settings.logging.file_path
    )

    logger = get_logger("main")
    logger.info("Initializing Sheet Mirror application")

    app = SheetMirrorApp(settings)
    setup_signal_handlers(app)
    await app.run()


def run():
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
        sys.exit(0)
    except Exception as e:
        print(f"Application failed with error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
