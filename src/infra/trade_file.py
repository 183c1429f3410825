from collections.abc import Iterator
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from loguru import logger

from src.config.loader import InputConfig
from src.types.dto import OrderType, TradeEvent


class TradeParseError(ValueError):
    """A single trade line could not be parsed; the reader skips it."""


def parse_timestamp(raw: str) -> datetime:
    raw = raw.strip()
    if not raw:
        raise TradeParseError("empty timestamp")
    try:
        ts = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError as exc:
        raise TradeParseError(f"invalid timestamp: {raw!r}") from exc
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


class TradeFileReader:
    """Read `timestamp,company,order_type,quantity` lines into TradeEvent lazily."""

    def __init__(self, path: Optional[str | Path] = None, cfg: Optional[InputConfig] = None) -> None:
        self.cfg = cfg or InputConfig()
        self.path = Path(path) if path is not None else (Path(self.cfg.path) if self.cfg.path else None)
        self._codes: dict[str, OrderType] = {
            self.cfg.new_code: "NEW",
            self.cfg.cancel_code: "CANCEL",
        }
        self.skipped = 0
        self.parsed = 0

    def parse_trade(self, line: str) -> TradeEvent:
        parts = line.strip().split(self.cfg.delimiter)
        if len(parts) != 4:
            raise TradeParseError("invalid line format")

        raw_ts, company, raw_type, raw_qty = (p.strip() for p in parts)
        ts = parse_timestamp(raw_ts)
        if not company:
            raise TradeParseError("empty company")

        order_type = self._codes.get(raw_type)
        if order_type is None:
            raise TradeParseError(f"invalid order type: {raw_type!r}")

        try:
            quantity = int(raw_qty)
        except ValueError as exc:
            raise TradeParseError(f"invalid quantity: {raw_qty!r}") from exc
        if quantity <= 0:
            raise TradeParseError(f"non-positive quantity: {quantity}")

        return TradeEvent(ts=ts, company=company, order_type=order_type, quantity=quantity)

    def read_lines(self) -> Iterator[str]:
        if self.path is None:
            raise ValueError("no trade file path configured")
        with self.path.open("r", encoding=self.cfg.encoding, newline="") as fh:
            for line in fh:
                yield line.rstrip("\r\n")

    def iter_trades(self) -> Iterator[TradeEvent]:
        self.skipped = 0
        self.parsed = 0
        for lineno, line in enumerate(self.read_lines(), start=1):
            if not line.strip():
                continue
            try:
                trade = self.parse_trade(line)
            except TradeParseError as exc:
                self.skipped += 1
                logger.warning(f"SKIP line={lineno} reason=\"{exc}\" raw={line!r}")
                continue
            self.parsed += 1
            yield trade
        logger.info(f"READ_DONE path={self.path} parsed={self.parsed} skipped={self.skipped}")

    def __iter__(self) -> Iterator[TradeEvent]:
        return self.iter_trades()
