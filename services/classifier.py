"""Quality classification of TDS readings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Sequence, Tuple, Union

from models.records import QualityBand, QualityLevel


@dataclass(frozen=True)
class BandRule:
    """Lower boundary of a band; the band extends up to the next rule."""

    lower_bound: float
    level: QualityLevel
    label: str
    color: str
    inclusive: bool = True

    @property
    def band(self) -> QualityBand:
        return QualityBand(level=self.level, label=self.label, color=self.color)

    def admits(self, value: float) -> bool:
        if self.inclusive:
            return value >= self.lower_bound
        return value > self.lower_bound


@dataclass(frozen=True)
class QualityScale:
    """Ordered breakpoint table plus the band used below every breakpoint."""

    name: str
    rules: Tuple[BandRule, ...]
    fallback: QualityBand

    def __post_init__(self) -> None:
        bounds = [rule.lower_bound for rule in self.rules]
        if bounds != sorted(bounds):
            raise ValueError(f"Quality scale {self.name!r} rules must be ordered by lower_bound.")


INVALID_BAND = QualityBand(level=QualityLevel.invalid, label="Invalid", color="#000000")

STANDARD_SCALE = QualityScale(
    name="standard",
    rules=(
        BandRule(0.0, QualityLevel.disconnected, "Disconnected", "#000000"),
        BandRule(0.0, QualityLevel.excellent, "Excellent", "#4CAF50", inclusive=False),
        BandRule(300.0, QualityLevel.good, "Good", "#8BC34A"),
        BandRule(600.0, QualityLevel.acceptable, "Acceptable", "#FFC107"),
        BandRule(900.0, QualityLevel.poor, "Poor", "#FF9800"),
        BandRule(1200.0, QualityLevel.unacceptable, "Unacceptable", "#FF9800"),
    ),
    fallback=INVALID_BAND,
)

LEGACY_SCALE = QualityScale(
    name="legacy",
    rules=(
        BandRule(0.0, QualityLevel.excellent, "Excellent", "#4CAF50"),
        BandRule(300.0, QualityLevel.good, "Good", "#8BC34A"),
        BandRule(600.0, QualityLevel.acceptable, "Acceptable", "#FFC107"),
        BandRule(900.0, QualityLevel.poor, "Poor", "#FF9800"),
        BandRule(1200.0, QualityLevel.unacceptable, "Unacceptable", "#F44336"),
    ),
    fallback=INVALID_BAND,
)

TableRow = Union[Tuple[float, str, str], Tuple[float, str, str, bool]]

SCALES: Dict[str, QualityScale] = {scale.name: scale for scale in (STANDARD_SCALE, LEGACY_SCALE)}


def scale_from_table(
    name: str,
    table: Sequence[TableRow],
    levels: Sequence[QualityLevel],
    fallback: QualityBand = INVALID_BAND,
) -> QualityScale:
    """Build a scale from ``(lower_bound, label, color[, inclusive])`` rows.

    Rows without the fourth element are inclusive of their lower bound.
    """
    if len(table) != len(levels):
        raise ValueError("Each table row needs a matching quality level.")
    rules = tuple(
        BandRule(
            lower_bound=row[0],
            level=level,
            label=row[1],
            color=row[2],
            inclusive=row[3] if len(row) > 3 else True,
        )
        for row, level in zip(table, levels)
    )
    return QualityScale(name=name, rules=rules, fallback=fallback)


class QualityClassifier:
    """Pure classifier that maps a ppm value onto a quality band."""

    def __init__(self, scale: QualityScale = STANDARD_SCALE) -> None:
        self.scale = scale

    def classify(self, value: float) -> QualityBand:
        band = self.scale.fallback
        for rule in self.scale.rules:
            if not rule.admits(value):
                break
            band = rule.band
        return band

    __call__ = classify
