from pathlib import Path
from typing import Optional

from loguru import logger

from src.config.loader import AppConfig
from src.engine.detector import ExcessiveCancellationDetector
from src.infra.trade_file import TradeFileReader
from src.types.dto import DetectionResult


class ExcessiveCancellationsChecker:
    """File-level entry point: read a trade file and report excessive cancellers.

    Every call re-reads the file with a fresh detector. Errors other than
    malformed lines propagate; nothing from a failed run is kept.

    `run()` is the single-pass entry point. The two query helpers each call
    `run()` again, so callers that need both values should use `run()`.
    """

    def __init__(self, path: str | Path, cfg: Optional[AppConfig] = None) -> None:
        self.path = Path(path)
        self.cfg = cfg or AppConfig()

    def run(self, *, presort: Optional[bool] = None) -> DetectionResult:
        reader = TradeFileReader(self.path, self.cfg.input)
        detector = ExcessiveCancellationDetector(self.cfg.detector)
        detector.process_all(reader.iter_trades(), presort=presort)

        excessive = detector.excessive_companies()
        result = DetectionResult(
            excessive=excessive,
            total_companies=detector.total_companies(),
            well_behaved=detector.well_behaved_count(),
            skipped_lines=reader.skipped,
        )
        logger.info(
            f"CHECK_DONE path={self.path} events={detector.event_count} companies={result.total_companies} "
            f"excessive={len(excessive)} well_behaved={result.well_behaved} skipped={result.skipped_lines}"
        )
        return result

    def companies_involved_in_excessive_cancellations(self) -> list[str]:
        return self.run().excessive

    def total_number_of_well_behaved_companies(self) -> int:
        return self.run().well_behaved
