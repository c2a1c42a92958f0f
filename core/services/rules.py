"""
Emergency rule engine.

Rules run in a fixed order and the first match wins:

1. Bradycardia  - heart rate at or below the low bound
2. Tachycardia  - heart rate at or above the high bound
3. Fall         - acceleration magnitude above the fall threshold

Heart-rate rules therefore take precedence over the fall rule. The fall rule
only looks at complete three-axis vectors.
"""

import math
from collections.abc import Callable
from decimal import ROUND_HALF_UP, Decimal

from core.config import RuleThresholds
from core.domain.models import EmergencyOutcome, NormalizedSample, RuleKind

Rule = Callable[[NormalizedSample], EmergencyOutcome | None]


def format_bpm(heart_rate: float) -> str:
    """Render a heart rate without a trailing .0 for whole numbers."""
    if heart_rate.is_integer():
        return str(int(heart_rate))
    return repr(heart_rate)


def acceleration_magnitude(sample: NormalizedSample) -> float | None:
    """Euclidean norm of the acceleration vector, None unless all axes are present."""
    if not sample.has_full_acceleration:
        return None
    try:
        return math.hypot(sample.accel_x, sample.accel_y, sample.accel_z)  # type: ignore[arg-type]
    except OverflowError:
        return math.inf


def format_magnitude(magnitude: float) -> str:
    """
    Two decimals with ties rounded up, as a wearable dashboard would show it.

    Values too large for fixed notation print in exponent form, and an
    overflowed magnitude prints as Infinity.
    """
    if not math.isfinite(magnitude):
        return "Infinity"
    if magnitude >= 1e21:
        return repr(magnitude)
    return str(Decimal(magnitude).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


class RuleEngine:
    """Evaluates normalized samples against the ordered rule sequence."""

    def __init__(self, thresholds: RuleThresholds | None = None) -> None:
        self.thresholds = thresholds or RuleThresholds()
        self._rules: tuple[Rule, ...] = (
            self._bradycardia,
            self._tachycardia,
            self._fall,
        )

    def evaluate(self, sample: NormalizedSample) -> EmergencyOutcome:
        for rule in self._rules:
            outcome = rule(sample)
            if outcome is not None:
                return outcome
        return EmergencyOutcome.clear()

    def _bradycardia(self, sample: NormalizedSample) -> EmergencyOutcome | None:
        hr = sample.heart_rate
        if hr is not None and hr <= self.thresholds.bradycardia_max_bpm:
            return EmergencyOutcome.emergency(
                RuleKind.BRADYCARDIA, f"Low heart rate detected: {format_bpm(hr)}"
            )
        return None

    def _tachycardia(self, sample: NormalizedSample) -> EmergencyOutcome | None:
        hr = sample.heart_rate
        if hr is not None and hr >= self.thresholds.tachycardia_min_bpm:
            return EmergencyOutcome.emergency(
                RuleKind.TACHYCARDIA, f"Very high heart rate detected: {format_bpm(hr)}"
            )
        return None

    def _fall(self, sample: NormalizedSample) -> EmergencyOutcome | None:
        magnitude = acceleration_magnitude(sample)
        if magnitude is not None and magnitude > self.thresholds.fall_magnitude_threshold:
            return EmergencyOutcome.emergency(
                RuleKind.FALL,
                f"Possible fall detected. Accel magnitude: {format_magnitude(magnitude)}",
            )
        return None
