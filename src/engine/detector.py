from __future__ import annotations

from collections.abc import AsyncIterable, Iterable
from datetime import datetime
from typing import Optional, get_args

from loguru import logger

from src.config.loader import DetectorConfig
from src.features.cancel_ratio_window import CancelRatioWindow
from src.types.dto import OrderType, TieBreak, TradeEvent


ORDER_TYPES: tuple[str, ...] = get_args(OrderType)


class OutOfOrderEventError(ValueError):
    """Event is older than the latest event already seen for its company."""


_TIE_RANK: dict[TieBreak, dict[str, int]] = {
    "input": {"NEW": 0, "CANCEL": 0},
    "cancel_first": {"NEW": 1, "CANCEL": 0},
    "new_first": {"NEW": 0, "CANCEL": 1},
}


def sort_company_batch(events: list[TradeEvent], tie_break: TieBreak = "input") -> list[TradeEvent]:
    """Stable sort by timestamp; equal timestamps ordered per ``tie_break``."""
    rank = _TIE_RANK[tie_break]
    return sorted(events, key=lambda ev: (ev.ts, rank.get(ev.order_type, 0)))


def _validate_event(event: TradeEvent) -> None:
    if not isinstance(event, TradeEvent):
        raise TypeError(f"expected TradeEvent, got {type(event).__name__}")
    if not isinstance(event.ts, datetime):
        raise TypeError(f"ts must be datetime, got {type(event.ts).__name__}")
    if not isinstance(event.company, str) or not event.company:
        raise ValueError(f"company must be a non-empty str: {event.company!r}")
    if event.order_type not in ORDER_TYPES:
        raise ValueError(f"unknown order_type: {event.order_type!r}")
    if isinstance(event.quantity, bool) or not isinstance(event.quantity, int):
        raise TypeError(f"quantity must be int, got {type(event.quantity).__name__}")
    if event.quantity <= 0:
        raise ValueError(f"quantity must be > 0: {event.quantity}")


class ExcessiveCancellationDetector:
    """Per-company rolling cancel ratio; a company is flagged once any window exceeds the threshold."""

    def __init__(self, cfg: Optional[DetectorConfig] = None) -> None:
        self.cfg = cfg or DetectorConfig()
        self._windows: dict[str, CancelRatioWindow] = {}
        self._event_count = 0

    @property
    def window_ms(self) -> int:
        return self.cfg.window_ms

    @property
    def threshold_ratio(self) -> float:
        return self.cfg.threshold_ratio

    @property
    def event_count(self) -> int:
        return self._event_count

    def window_for(self, company: str) -> Optional[CancelRatioWindow]:
        return self._windows.get(company)

    def reset(self) -> None:
        self._windows.clear()
        self._event_count = 0

    def process_event(self, event: TradeEvent) -> None:
        _validate_event(event)

        win = self._windows.get(event.company)
        if win is None:
            win = CancelRatioWindow(event.company, self.cfg.window_ms, self.cfg.threshold_ratio)

        latest = win.latest
        if latest is not None and event.ts < latest.ts:
            raise OutOfOrderEventError(
                f"company={event.company} ts={event.ts.isoformat()} < latest={latest.ts.isoformat()}"
            )

        # ratio is checked on the old contents before anything is dropped
        while win.is_outside_window(event):
            self._check(win)
            win.evict_oldest()
        win.add(event)
        # registered only once it holds a valid event
        self._windows.setdefault(event.company, win)
        self._check(win)
        self._event_count += 1

    def finalize(self) -> None:
        for win in self._windows.values():
            if len(win):
                self._check(win)

    def process_all(
        self,
        events: Iterable[TradeEvent],
        *,
        presort: Optional[bool] = None,
    ) -> "ExcessiveCancellationDetector":
        presort = self.cfg.presort if presort is None else presort
        if presort:
            batches: dict[str, list[TradeEvent]] = {}
            for ev in events:
                batches.setdefault(ev.company, []).append(ev)
            for batch in batches.values():
                for ev in sort_company_batch(batch, self.cfg.tie_break):
                    self.process_event(ev)
        else:
            for ev in events:
                self.process_event(ev)
        self.finalize()
        return self

    async def aprocess_all(self, events: AsyncIterable[TradeEvent]) -> "ExcessiveCancellationDetector":
        async for ev in events:
            self.process_event(ev)
        self.finalize()
        return self

    def excessive_companies(self) -> list[str]:
        return [company for company, win in self._windows.items() if win.has_ever_exceeded]

    def total_companies(self) -> int:
        return len(self._windows)

    def well_behaved_count(self) -> int:
        return self.total_companies() - len(self.excessive_companies())

    def _check(self, win: CancelRatioWindow) -> None:
        if win.has_ever_exceeded:
            return
        if win.check_and_latch():
            new_sum, cancel_sum, ratio = win.snapshot()
            logger.info(
                f"EXCESSIVE company={win.company} ratio={ratio:.4f} thr={win.threshold_ratio:.4f} "
                f"new={new_sum} cancel={cancel_sum} window_ms={win.window_ms} "
                f"from={win.oldest.ts.isoformat() if win.oldest else 'na'}"
            )
