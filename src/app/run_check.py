"""
Scan a trade file and report companies involved in excessive cancelling.

Usage:
    python -m src.app.run_check --input data/trades.csv
    python -m src.app.run_check --input data/trades.csv --mode stream --json
"""

import argparse
import json
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from loguru import logger
from pydantic import ValidationError

from src.config.loader import AppConfig, DetectorConfig, load_app_config
from src.engine.checker import ExcessiveCancellationsChecker


BASE_CONFIG = "configs/base.yml"


def _setup_logging() -> None:
    log_dir = Path("logs") / "runtime"
    log_dir.mkdir(parents=True, exist_ok=True)
    ts = datetime.now().strftime("%Y%m%d-%H%M%S")
    logger.add(log_dir / f"check-{ts}.log", level="INFO", enqueue=True)


def _env_int(name: str) -> Optional[int]:
    val = os.getenv(name)
    if not val:
        return None
    try:
        return int(val)
    except ValueError:
        logger.warning(f"{name} invalid int: {val}")
        return None


def _env_float(name: str) -> Optional[float]:
    val = os.getenv(name)
    if not val:
        return None
    try:
        return float(val)
    except ValueError:
        logger.warning(f"{name} invalid float: {val}")
        return None


def _apply_overrides(
    cfg: AppConfig,
    *,
    input_path: Optional[str],
    window_ms: Optional[int],
    threshold: Optional[float],
) -> AppConfig:
    """CLI flags win over environment, environment wins over YAML."""
    data = cfg.model_dump()
    detector: dict = data["detector"]
    env_values = {
        "window_ms": ("CHECKER_WINDOW_MS", _env_int("CHECKER_WINDOW_MS")),
        "threshold_ratio": ("CHECKER_THRESHOLD_RATIO", _env_float("CHECKER_THRESHOLD_RATIO")),
    }
    for key, (name, val) in env_values.items():
        if val is None:
            continue
        try:
            DetectorConfig.model_validate({**detector, key: val})
        except ValidationError:
            logger.warning(f"{name} out of range, ignored: {val}")
            continue
        detector[key] = val
    if window_ms is not None:
        detector["window_ms"] = window_ms
    if threshold is not None:
        detector["threshold_ratio"] = threshold

    if input_path:
        data["input"]["path"] = input_path
    return AppConfig.model_validate(data)


def _format_result(excessive: list[str], well_behaved: int, total: int, *, as_json: bool) -> str:
    if as_json:
        return json.dumps(
            {"excessive": excessive, "well_behaved": well_behaved, "total_companies": total},
            ensure_ascii=False,
        )
    lines = [f"excessive_companies={len(excessive)}"]
    lines.extend(f"  {c}" for c in excessive)
    lines.append(f"well_behaved_companies={well_behaved}")
    return "\n".join(lines)


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--input", default=None, help="Trade file (timestamp,company,type,quantity)")
    parser.add_argument("--override", default=None, help="Override config YAML on top of configs/base.yml")
    parser.add_argument("--window-ms", type=int, default=None)
    parser.add_argument("--threshold", type=float, default=None)
    parser.add_argument("--mode", choices=["batch", "stream"], default="batch")
    parser.add_argument("--json", action="store_true")
    parser.add_argument("--no-log-file", action="store_true")
    args = parser.parse_args(argv)

    try:
        cfg = load_app_config(BASE_CONFIG, args.override)
        cfg = _apply_overrides(cfg, input_path=args.input, window_ms=args.window_ms, threshold=args.threshold)
    except ValidationError as exc:
        logger.error(f"FATAL invalid config: {exc}")
        return 1
    if not args.no_log_file:
        _setup_logging()

    if not cfg.input.path:
        parser.error("no input file given (--input or input.path in config)")

    logger.info(
        "START "
        f"input={cfg.input.path} override={args.override} mode={args.mode} env={cfg.env} "
        f"window_ms={cfg.detector.window_ms} thr={cfg.detector.threshold_ratio} "
        f"tie_break={cfg.detector.tie_break}"
    )

    checker = ExcessiveCancellationsChecker(cfg.input.path, cfg)
    try:
        result = checker.run(presort=(args.mode == "batch"))
    except KeyboardInterrupt:
        return 130
    except Exception as exc:
        logger.error(f"FATAL input={cfg.input.path} error={type(exc).__name__}: {exc}")
        return 1

    logger.info(
        f"RESULT excessive={result.excessive} well_behaved={result.well_behaved} "
        f"total={result.total_companies} skipped={result.skipped_lines}"
    )
    print(_format_result(result.excessive, result.well_behaved, result.total_companies, as_json=args.json))
    return 0


if __name__ == "__main__":
    sys.exit(main())
