from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
from datetime import date
from typing import Sequence

from apps.scheduler.ingestion_scheduler.wiring.modules import build_ingestion_runtime
from invest_loader.contexts.ingestion.adapters.outbound.config import (
    load_ingestion_runtime_config,
    resolve_ingestion_config_path,
)
from invest_loader.contexts.ingestion.application.dto import TriggerRun

log = logging.getLogger(__name__)


class RunTriggerCli:
    """Run one ingestion trigger to completion in the foreground."""

    def run(self, argv: Sequence[str]) -> int:
        parser = _build_parser()
        ns = parser.parse_args(list(argv))

        config_path = resolve_ingestion_config_path(environ=os.environ, cli_path=ns.config)
        cfg = load_ingestion_runtime_config(config_path)
        runtime = build_ingestion_runtime(config=cfg, environ=os.environ)

        if ns.trigger not in runtime.coordinator.trigger_names():
            parser.error(
                f"unknown trigger {ns.trigger!r}, "
                f"expected one of: {', '.join(runtime.coordinator.trigger_names())}"
            )

        run = asyncio.run(runtime.coordinator.run_trigger(ns.trigger, ns.date))
        _print_report(run, report_format=ns.report_format)
        return 0 if run.status == "COMPLETED" else 1


def _print_report(run: TriggerRun, *, report_format: str) -> None:
    if report_format == "json":
        print(
            json.dumps(
                {
                    "task_id": run.task_id,
                    "trigger": run.trigger_name,
                    "run_date": run.run_date.isoformat(),
                    "status": run.status,
                    "duration_ms": run.duration_ms,
                    "message": run.message,
                    "reports": list(run.reports),
                },
                ensure_ascii=False,
            )
        )
        return
    lines = [
        f"run-trigger {run.trigger_name} ({run.run_date.isoformat()}):",
        f"- task_id: {run.task_id}",
        f"- status: {run.status}",
        f"- duration_ms: {run.duration_ms}",
    ]
    lines.extend(f"- {report}" for report in run.reports)
    if run.status != "COMPLETED" or not run.reports:
        lines.append(f"- message: {run.message}")
    print("\n".join(lines))


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="run-trigger")
    p.add_argument("trigger", help="Trigger name from ingestion.yaml (e.g. candles)")
    p.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Business date YYYY-MM-DD (default: trigger day offset from today)",
    )
    p.add_argument(
        "--config",
        default=None,
        help="Path to ingestion.yaml (default: INVEST_LOADER_CONFIG or configs/<env>/ingestion.yaml)",  # noqa: E501
    )
    p.add_argument(
        "--report-format",
        choices=("text", "json"),
        default="text",
        help="Output format",
    )
    return p
