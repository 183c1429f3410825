from datetime import datetime, timedelta, timezone

import pytest

from src.features.cancel_ratio_window import CancelRatioWindow
from src.types.dto import TradeEvent


T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _ev(ms: int, order_type: str, qty: int, company: str = "Company") -> TradeEvent:
    return TradeEvent(ts=T0 + timedelta(milliseconds=ms), company=company, order_type=order_type, quantity=qty)  # type: ignore[arg-type]


def test_cancellation_ratio():
    win = CancelRatioWindow("Company", 1000, 0.5)
    win.add(_ev(0, "NEW", 10))
    win.add(_ev(0, "CANCEL", 30))
    assert win.cancellation_ratio() == 0.75
    assert win.snapshot() == (10, 30, 0.75)


def test_ratio_is_zero_when_window_empty():
    win = CancelRatioWindow("Company", 1000, 0.0)
    assert win.cancellation_ratio() == 0.0
    assert win.check_and_latch() is False


def test_only_new_orders_never_excessive_even_with_zero_threshold():
    win = CancelRatioWindow("Company", 1000, 0.0)
    win.add(_ev(0, "NEW", 10))
    assert win.check_and_latch() is False


def test_is_outside_window_boundary_is_inclusive():
    win = CancelRatioWindow("Company", 1000, 0.5)
    assert win.is_outside_window(_ev(5000, "NEW", 1)) is False  # empty window
    win.add(_ev(0, "NEW", 100))
    assert win.is_outside_window(_ev(0, "NEW", 1)) is False
    assert win.is_outside_window(_ev(1000, "NEW", 1)) is False
    assert win.is_outside_window(_ev(1001, "NEW", 1)) is True
    assert win.is_outside_window(_ev(86_400_000, "NEW", 1)) is True


def test_check_and_latch_strict_and_sticky():
    win = CancelRatioWindow("Company", 1000, 0.5)
    win.add(_ev(0, "NEW", 100))
    win.add(_ev(0, "CANCEL", 100))
    assert win.check_and_latch() is False

    win.add(_ev(0, "CANCEL", 100))
    assert win.check_and_latch() is True
    assert win.check_and_latch() is True

    win.evict_oldest()
    win.add(_ev(10, "NEW", 10_000))
    assert win.cancellation_ratio() < 0.5
    assert win.check_and_latch() is True
    assert win.has_ever_exceeded is True


def test_totals_follow_add_and_evict():
    win = CancelRatioWindow("Company", 1000, 0.5)
    events = [_ev(0, "NEW", 5), _ev(1, "CANCEL", 7), _ev(2, "NEW", 11), _ev(3, "CANCEL", 13)]
    for ev in events:
        win.add(ev)
    assert (win.new_total, win.cancel_total) == (16, 20)

    evicted = win.evict_oldest()
    assert evicted == events[0]
    assert (win.new_total, win.cancel_total) == (11, 20)

    win.evict_oldest()
    assert (win.new_total, win.cancel_total) == (11, 13)
    assert len(win) == 2
    assert win.oldest == events[2]
    assert win.latest == events[3]


def test_evict_on_empty_window_raises():
    win = CancelRatioWindow("Company", 1000, 0.5)
    with pytest.raises(IndexError):
        win.evict_oldest()


def test_add_rejects_other_company():
    win = CancelRatioWindow("Company", 1000, 0.5)
    with pytest.raises(ValueError):
        win.add(_ev(0, "NEW", 1, company="Other"))
    assert len(win) == 0


def test_reset_clears_latch_and_totals():
    win = CancelRatioWindow("Company", 1000, 0.1)
    win.add(_ev(0, "CANCEL", 1))
    assert win.check_and_latch() is True
    win.reset()
    assert win.has_ever_exceeded is False
    assert (win.new_total, win.cancel_total, len(win)) == (0, 0, 0)
