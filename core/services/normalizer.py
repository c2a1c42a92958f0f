"""
Sample normalization.

Turns whatever the device posted into a NormalizedSample. Bad input never
fails the pipeline: a field that is missing, null, or not a finite number
simply becomes None.
"""

import math
from collections.abc import Mapping
from typing import Any

from core.domain.models import NormalizedSample, Sample


def to_finite_float(value: Any) -> float | None:
    """Coerce a raw field to a finite float, or None if that is not possible."""
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    elif not isinstance(value, int | float):
        return None

    try:
        number = float(value)
    except (ValueError, OverflowError):
        return None

    return number if math.isfinite(number) else None


def _acceleration_axes(raw_accel: Any) -> tuple[Any, Any, Any]:
    if isinstance(raw_accel, Mapping):
        return raw_accel.get("x"), raw_accel.get("y"), raw_accel.get("z")
    return None, None, None


def normalize(raw_sample: Sample | Mapping[str, Any] | None) -> NormalizedSample:
    """
    Build a NormalizedSample from a Sample model or a plain mapping.

    Acceleration axes are normalized independently, so a missing z does not
    null x and y. The original wire name ``accel`` is accepted as well as
    ``acceleration``.
    """
    if isinstance(raw_sample, Sample):
        accel = raw_sample.acceleration
        return NormalizedSample(
            heart_rate=to_finite_float(raw_sample.heart_rate),
            accel_x=to_finite_float(accel.x) if accel else None,
            accel_y=to_finite_float(accel.y) if accel else None,
            accel_z=to_finite_float(accel.z) if accel else None,
        )

    if not isinstance(raw_sample, Mapping):
        return NormalizedSample()

    raw_accel = raw_sample.get("acceleration")
    if raw_accel is None:
        raw_accel = raw_sample.get("accel")
    x, y, z = _acceleration_axes(raw_accel)

    return NormalizedSample(
        heart_rate=to_finite_float(raw_sample.get("heart_rate")),
        accel_x=to_finite_float(x),
        accel_y=to_finite_float(y),
        accel_z=to_finite_float(z),
    )
