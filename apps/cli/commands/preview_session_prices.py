from __future__ import annotations

import argparse
import asyncio
import json
import os
from datetime import date
from typing import Sequence

from apps.scheduler.ingestion_scheduler.wiring.modules import build_ingestion_runtime
from invest_loader.contexts.ingestion.adapters.outbound.config import (
    load_ingestion_runtime_config,
    resolve_ingestion_config_path,
)
from invest_loader.contexts.ingestion.domain import SESSION_KINDS


class PreviewSessionPricesCli:
    """Print derived session prices of one date without storing them."""

    def run(self, argv: Sequence[str]) -> int:
        ns = _build_parser().parse_args(list(argv))

        config_path = resolve_ingestion_config_path(environ=os.environ, cli_path=ns.config)
        cfg = load_ingestion_runtime_config(config_path)
        runtime = build_ingestion_runtime(config=cfg, environ=os.environ)

        prices = asyncio.run(runtime.derive_use_case.preview(ns.date, ns.kind))
        ordered = sorted(prices, key=lambda price: price.instrument_id.value)

        if ns.report_format == "json":
            print(
                json.dumps(
                    [
                        {
                            "instrument_id": price.instrument_id.value,
                            "trade_date": price.trade_date.isoformat(),
                            "kind": price.kind,
                            "price": price.price,
                            "currency": price.currency,
                        }
                        for price in ordered
                    ],
                    ensure_ascii=False,
                )
            )
        else:
            print(f"{ns.kind} {ns.date.isoformat()}: {len(ordered)} prices")
            for price in ordered:
                print(f"- {price.instrument_id} {price.price:.9g} {price.currency}")
        return 0


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="preview-session-prices")
    p.add_argument("kind", choices=SESSION_KINDS, help="Session price kind")
    p.add_argument("--date", type=date.fromisoformat, required=True, help="Date YYYY-MM-DD")
    p.add_argument("--config", default=None, help="Path to ingestion.yaml")
    p.add_argument(
        "--report-format",
        choices=("text", "json"),
        default="text",
        help="Output format",
    )
    return p
