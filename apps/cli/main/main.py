from __future__ import annotations

import logging
import sys

from apps.cli.commands.preview_session_prices import PreviewSessionPricesCli
from apps.cli.commands.run_trigger import RunTriggerCli


def _configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def main(argv: list[str] | None = None) -> int:
    _configure_logging()
    args = argv if argv is not None else sys.argv[1:]

    if not args:
        print(
            "Usage:\n"
            "  run-trigger <trigger> [--date YYYY-MM-DD] [args...]\n"
            "  preview-session-prices <kind> --date YYYY-MM-DD [args...]\n"
        )
        return 2

    cmd = args[0]
    rest = args[1:]

    if cmd == "run-trigger":
        return RunTriggerCli().run(rest)
    if cmd == "preview-session-prices":
        return PreviewSessionPricesCli().run(rest)

    print(f"unknown command: {cmd}", file=sys.stderr)
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
