"""CLI entry point: corre el motor de monitoreo sin API HTTP."""

from __future__ import annotations

import argparse
import logging
import signal
import threading
from dataclasses import replace

from common.config import get_settings
from monitor_engine.service import MonitoringService

logger = logging.getLogger(__name__)


def _report(service: MonitoringService) -> None:
    fleet = service.get_fleet_health()
    warnings = sum(1 for devs in fleet.values() for h in devs.values() if h["warningState"])
    failures = sum(1 for devs in fleet.values() for h in devs.values() if h["failureState"])
    logger.info(
        "[SERVICE] Fleet areas=%d devices=%d warning=%d failure=%d pending=%d errors=%d",
        len(fleet),
        sum(len(devs) for devs in fleet.values()),
        warnings,
        failures,
        len(service.orchestrator.pending()),
        len(service.error_log),
    )


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    p = argparse.ArgumentParser(description="Condition monitor (headless)")
    p.add_argument("--catalog", help="device catalog JSON (default: CATALOG_PATH)")
    p.add_argument("--samples-to-fail", type=int)
    p.add_argument("--samples-to-heal", type=int)
    p.add_argument("--interval-ms", type=int, help="evaluation interval")
    p.add_argument("--report-seconds", type=float, default=60.0)
    args = p.parse_args()

    settings = get_settings()
    overrides = {
        "catalog_path": args.catalog,
        "samples_to_fail": args.samples_to_fail,
        "samples_to_heal": args.samples_to_heal,
        "evaluation_interval_ms": args.interval_ms,
    }
    settings = replace(settings, **{k: v for k, v in overrides.items() if v is not None})

    logger.info(
        "Config: catalog=%s samples_to_fail=%d samples_to_heal=%d interval_ms=%d",
        settings.catalog_path,
        settings.samples_to_fail,
        settings.samples_to_heal,
        settings.evaluation_interval_ms,
    )

    service = MonitoringService.from_settings(settings)
    stop = threading.Event()

    def _handle_signal(signum, _frame):
        logger.info("Signal %s received, stopping...", signum)
        stop.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    service.start()
    try:
        while not stop.wait(args.report_seconds):
            _report(service)
    finally:
        service.stop()


if __name__ == "__main__":
    main()
