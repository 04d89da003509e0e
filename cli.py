"""Command-line interface for guardrail projection runs."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional, Sequence

from config import load_config
from runner.loop import CaseRecord, run_cases, ship_counts
from telemetry.writer import write_history


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Guardrail step projection runner")
    parser.add_argument(
        "--config",
        required=True,
        help="Path to YAML configuration file.",
    )
    parser.add_argument(
        "--out",
        required=True,
        help="Output directory for the decision history.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Emit DEBUG logs from the active-set search.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    cfg = load_config(args.config)
    _configure_logging(cfg.run.logging, args.verbose)

    history = run_cases(cfg)

    out_dir = Path(args.out)
    write_history(out_dir / "history.jsonl", (record.to_dict() for record in history))
    for record in history:
        print(_format_line(record))
    shipped, held = ship_counts(history)
    print(f"{shipped} ship, {held} hold -> {out_dir / 'history.jsonl'}")
    return 0 if held == 0 else 1


def _configure_logging(enabled: bool, verbose: bool) -> None:
    if verbose:
        level = logging.DEBUG
    elif enabled:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _format_line(record: CaseRecord) -> str:
    result = record.result
    step = result.projected_step
    if result.ship:
        active = ",".join(result.active_set_ids) or "-"
        return (
            f"{record.name}: SHIP step=({step.x:.4f}, {step.y:.4f}) "
            f"active={active} retained={result.descent_retained_ratio:.3f}"
        )
    return f"{record.name}: HOLD {result.reason}"


if __name__ == "__main__":
    raise SystemExit(main())
