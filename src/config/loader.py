import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from src.types.dto import TieBreak


class InputConfig(BaseModel):
    path: Optional[str] = None
    delimiter: str = Field(default=",")
    new_code: str = Field(default="D")
    cancel_code: str = Field(default="F")
    encoding: str = Field(default="utf-8")


class DetectorConfig(BaseModel):
    window_ms: int = 60_000  # 比率を測る移動窓（ミリ秒）
    threshold_ratio: float = 1 / 3  # これを超えたら過剰キャンセル
    presort: bool = True
    tie_break: TieBreak = Field(default="input")

    @field_validator("window_ms")
    @classmethod
    def _window_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("window_ms must be >= 0")
        return v

    @field_validator("threshold_ratio")
    @classmethod
    def _ratio_in_range(cls, v: float) -> float:
        if not 0.0 <= v < 1.0:
            raise ValueError("threshold_ratio must be in [0, 1)")
        return v


class AppConfig(BaseModel):
    env: str = Field(default="local")
    input: InputConfig = Field(default_factory=InputConfig)
    detector: DetectorConfig = Field(default_factory=DetectorConfig)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Shallow + nested mapping merge (override wins)."""
    merged: dict[str, Any] = dict(base)
    for key, val in override.items():
        if (
            key in merged
            and isinstance(merged[key], Mapping)
            and isinstance(val, Mapping)
        ):
            merged[key] = _deep_merge(dict(merged[key]), dict(val))
        else:
            merged[key] = val
    return merged


def load_yaml(path: os.PathLike[str] | str) -> dict[str, Any]:
    text = Path(path).read_text(encoding="utf-8")
    return yaml.safe_load(text) or {}


def load_app_config(base_path: Optional[str] = None, override_path: Optional[str] = None) -> AppConfig:
    base: dict[str, Any] = {}
    if base_path and Path(base_path).exists():
        base = load_yaml(base_path)
    merged = base
    if override_path and Path(override_path).exists():
        override = load_yaml(override_path)
        merged = _deep_merge(base, override)
    return AppConfig.model_validate(merged)
