from dataclasses import dataclass
from datetime import datetime
from typing import Literal


OrderType = Literal["NEW", "CANCEL"]
TieBreak = Literal["input", "cancel_first", "new_first"]


@dataclass(frozen=True)
class TradeEvent:
    ts: datetime
    company: str
    order_type: OrderType
    quantity: int


@dataclass(frozen=True)
class DetectionResult:
    excessive: list[str]
    total_companies: int
    well_behaved: int
    skipped_lines: int = 0
