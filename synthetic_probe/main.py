from __future__ import annotations

import argparse
import asyncio
import logging
import os
from pathlib import Path

import httpx
import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from synthetic_probe.bootstrap import Bootstrapper
from synthetic_probe.checkers import TransportCheckerFactory
from synthetic_probe.client import ProbeClient
from synthetic_probe.config import ProbeSettings, load_settings
from synthetic_probe.errors import BootstrapError
from synthetic_probe.notifications import Notifier, TelegramConfig
from synthetic_probe.reporter import MonitoringReporter
from synthetic_probe.service import MonitoringService
from synthetic_probe.telemetry import PollingTelemetrySubscriber


logger = structlog.get_logger(__name__)

RUN_JOB_ID = "synthetic_probe_run"


def configure_logging(level_name: str) -> None:
    level = getattr(logging, str(level_name).upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    # The device access token is part of transport URLs; keep request logs out.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _telegram_config(settings: ProbeSettings) -> TelegramConfig | None:
    token = settings.reporting.telegram_bot_token
    chat_id = settings.reporting.telegram_chat_id
    if not token or not chat_id:
        logger.warning("Missing Telegram bot token and/or chat id; notifications are only logged")
        return None
    return TelegramConfig(bot_token=token, chat_id=chat_id)


def schedule_runs(service: MonitoringService, interval_seconds: int) -> AsyncIOScheduler:
    """Start a scheduler invoking ``service.run_checks`` every ``interval_seconds``.

    At most one run is active at a time; a run that would start while the
    previous one is still going is skipped.
    """
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        service.run_checks,
        trigger=IntervalTrigger(seconds=interval_seconds),
        id=RUN_JOB_ID,
        name=service.name,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info("Scheduled runs", service=service.name, interval_seconds=interval_seconds)
    return scheduler


async def run(settings: ProbeSettings, *, once: bool) -> int:
    async with httpx.AsyncClient() as http, ProbeClient(
        settings.base_url,
        settings.username,
        settings.password,
        timeout_seconds=settings.request_timeout_seconds,
    ) as client:
        reporter = MonitoringReporter(settings.reporting, Notifier(http, _telegram_config(settings)))
        bootstrapper = Bootstrapper(
            client,
            TransportCheckerFactory(reporter, http),
            on_resolution_error=settings.on_resolution_error,
        )
        try:
            registry = await bootstrapper.initialize(settings.monitoring)
        except BootstrapError as exc:
            logger.error("Bootstrap failed", error=str(exc))
            return 2

        service = MonitoringService(
            "transport monitoring",
            registry,
            client,
            PollingTelemetrySubscriber(
                settings.base_url,
                poll_interval_seconds=settings.subscription.poll_interval_seconds,
                wait_timeout_seconds=settings.subscription.wait_timeout_seconds,
                timeout_seconds=settings.request_timeout_seconds,
            ),
            reporter,
            fail_fast=settings.fail_fast,
        )

        if once or registry.is_empty:
            result = await service.run_checks()
            return 0 if result.ok else 1

        await service.run_checks()
        scheduler = schedule_runs(service, settings.interval_seconds)
        try:
            await asyncio.Event().wait()
        finally:
            scheduler.shutdown(wait=False)
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Synthetic telemetry probe")
    parser.add_argument(
        "--config",
        default=os.getenv("PROBE_CONFIG", "config/probe.yaml"),
        help="Path to YAML config",
    )
    parser.add_argument("--once", action="store_true", help="Run one check cycle and exit")
    parser.add_argument("--log-level", default=None, help="Logging level (INFO, WARNING, ...)")
    args = parser.parse_args()

    settings = load_settings(Path(args.config))
    configure_logging(args.log_level or settings.log_level)
    try:
        return asyncio.run(run(settings, once=bool(args.once)))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
