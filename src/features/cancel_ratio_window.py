from __future__ import annotations

# 何をするファイルか：1社分の注文/キャンセル数量を移動窓で積み上げ、キャンセル比率を判定する部品
from collections import deque
from datetime import timedelta
from typing import Deque, Optional, Tuple

from src.types.dto import TradeEvent


class CancelRatioWindow:
    # 何をするクラスか：直近window_msの NEW/CANCEL 数量合計を保ち、しきい値超えを一度でも見たら覚えておく

    def __init__(self, company: str, window_ms: int, threshold_ratio: float) -> None:
        # 何をする関数か：会社ID・窓幅（ms）・しきい値を受け取り、窓と合計値とラッチを初期化する
        self.company = company
        self.window_ms: int = int(window_ms)
        self.threshold_ratio: float = float(threshold_ratio)
        self._window: timedelta = timedelta(milliseconds=self.window_ms)
        self._events: Deque[TradeEvent] = deque()
        self._new_sum: int = 0
        self._cancel_sum: int = 0
        self._exceeded: bool = False

    def add(self, event: TradeEvent) -> None:
        # 何をする関数か：イベントを窓の末尾に積み、種別に応じた合計へ数量を足す
        if event.company != self.company:
            raise ValueError(f"company mismatch: window={self.company!r} event={event.company!r}")
        self._apply(event, +1)
        self._events.append(event)

    def evict_oldest(self) -> TradeEvent:
        # 何をする関数か：窓の先頭（最古）イベントを捨てて合計から差し引く
        if not self._events:
            raise IndexError("evict_oldest on empty window")
        ev = self._events.popleft()
        self._apply(ev, -1)
        return ev

    def is_outside_window(self, event: TradeEvent) -> bool:
        # 何をする関数か：eventを基準に最古イベントが窓の外ならTrue（ちょうど境界は窓の内側）
        oldest = self.oldest
        if oldest is None:
            return False
        return event.ts - oldest.ts > self._window

    def cancellation_ratio(self) -> float:
        # 何をする関数か：窓内の cancel / (new + cancel) を返す（両方0なら0.0）
        total = self._new_sum + self._cancel_sum
        if total == 0:
            return 0.0
        return self._cancel_sum / total

    def check_and_latch(self) -> bool:
        # 何をする関数か：比率がしきい値を超えていればラッチを立てる。一度立ったら戻らない
        if self._exceeded:
            return True
        if self._cancel_sum > 0 and self.cancellation_ratio() > self.threshold_ratio:
            self._exceeded = True
        return self._exceeded

    def reset(self) -> None:
        # 何をする関数か：窓・合計値・ラッチをすべて初期化し、新しい走査に備える
        self._events.clear()
        self._new_sum = 0
        self._cancel_sum = 0
        self._exceeded = False

    @property
    def has_ever_exceeded(self) -> bool:
        # 何をする関数か：一度でもしきい値を超えたかを返す
        return self._exceeded

    @property
    def oldest(self) -> Optional[TradeEvent]:
        # 何をする関数か：窓内で最も古いイベントを返す（空ならNone）
        return self._events[0] if self._events else None

    @property
    def latest(self) -> Optional[TradeEvent]:
        # 何をする関数か：最後に積んだイベントを返す（空ならNone）
        return self._events[-1] if self._events else None

    @property
    def new_total(self) -> int:
        # 何をする関数か：窓内のNEW数量合計を返す
        return self._new_sum

    @property
    def cancel_total(self) -> int:
        # 何をする関数か：窓内のCANCEL数量合計を返す
        return self._cancel_sum

    def __len__(self) -> int:
        # 何をする関数か：窓内のイベント数を返す
        return len(self._events)

    def snapshot(self) -> Tuple[int, int, float]:
        # 何をする関数か：ログ出し用に（new_sum, cancel_sum, ratio）をまとめて返す
        return self._new_sum, self._cancel_sum, self.cancellation_ratio()

    def _apply(self, event: TradeEvent, sign: int) -> None:
        # 何をする関数か：種別に応じてNEWかCANCELの合計へ符号つきで数量を反映する
        if event.order_type == "NEW":
            self._new_sum += sign * event.quantity
        elif event.order_type == "CANCEL":
            self._cancel_sum += sign * event.quantity
        else:
            raise ValueError(f"unknown order_type: {event.order_type!r}")
