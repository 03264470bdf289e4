"""Loss-of-control severity from the magnitude and rate of change of key signals."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence


@dataclass(frozen=True)
class MetricThreshold:
    """Magnitude threshold and rate-of-change threshold for one monitored signal."""

    threshold: float
    rate: float

    def __post_init__(self) -> None:
        if not (self.threshold > 0) or not (self.rate > 0):
            raise ValueError("Loss-of-control thresholds must be positive")


@dataclass(frozen=True)
class LossOfControlConfig:
    yaw_rate: MetricThreshold = field(default_factory=lambda: MetricThreshold(1.0, 2.0))
    slip_angle: MetricThreshold = field(default_factory=lambda: MetricThreshold(0.2, 1.0))
    lateral_accel: MetricThreshold = field(default_factory=lambda: MetricThreshold(8.0, 40.0))
    slip_ratio: MetricThreshold = field(default_factory=lambda: MetricThreshold(0.2, 5.0))


class _MetricHistory:
    __slots__ = ("value", "has_previous")

    def __init__(self) -> None:
        self.value = 0.0
        self.has_previous = False

    def evaluate(self, dt: float, value: float, limits: MetricThreshold) -> float:
        severity = 0.0
        if self.has_previous:
            rate = abs(value - self.value) / max(dt, 1e-9)
            magnitude = abs(value)
            if magnitude >= limits.threshold and rate >= limits.rate:
                magnitude_score = (magnitude - limits.threshold) / limits.threshold
                rate_score = (rate - limits.rate) / limits.rate
                severity = max(0.0, 0.5 * magnitude_score + 0.5 * rate_score)
        self.value = value
        self.has_previous = True
        return severity


class LossOfControlDetector:
    """Scores sudden, large excursions of yaw rate, slip, lateral accel and wheel slip."""

    def __init__(self, config: LossOfControlConfig | None = None) -> None:
        self.config = config or LossOfControlConfig()
        self._yaw_rate = _MetricHistory()
        self._slip_angle = _MetricHistory()
        self._lateral_accel = _MetricHistory()
        self._wheels: List[_MetricHistory] = []
        self._severity = 0.0

    @property
    def severity(self) -> float:
        return self._severity

    def reset(self) -> None:
        self._yaw_rate = _MetricHistory()
        self._slip_angle = _MetricHistory()
        self._lateral_accel = _MetricHistory()
        self._wheels = []
        self._severity = 0.0

    def update(
        self,
        dt: float,
        yaw_rate: float,
        slip_angle: float,
        lateral_accel: float,
        wheel_slip_ratios: Sequence[float] = (),
    ) -> float:
        """Record one sample of every signal and return the overall severity."""
        if not (dt > 0):
            raise ValueError(f"Loss-of-control detector requires positive dt; got {dt}")
        if len(self._wheels) != len(wheel_slip_ratios):
            self._wheels = [_MetricHistory() for _ in wheel_slip_ratios]

        config = self.config
        scores = [
            self._yaw_rate.evaluate(dt, yaw_rate, config.yaw_rate),
            self._slip_angle.evaluate(dt, slip_angle, config.slip_angle),
            self._lateral_accel.evaluate(dt, lateral_accel, config.lateral_accel),
        ]
        for history, ratio in zip(self._wheels, wheel_slip_ratios):
            scores.append(history.evaluate(dt, ratio, config.slip_ratio))

        self._severity = max(0.0, *scores)
        return self._severity


__all__ = ["MetricThreshold", "LossOfControlConfig", "LossOfControlDetector"]
