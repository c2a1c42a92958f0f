"""
Domain models for wearable emergency detection.

These models represent the core business concepts and are framework-agnostic.
They use Pydantic for validation but could be swapped to dataclasses if needed.
"""

from collections.abc import Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class RuleKind(str, Enum):
    """Emergency rules, in the order they are evaluated."""

    BRADYCARDIA = "bradycardia"
    TACHYCARDIA = "tachycardia"
    FALL = "fall"
    NONE = "none"


class Acceleration(BaseModel):
    """
    Three-axis acceleration in m/s^2. Each axis may be missing on its own.

    Axes hold whatever the device sent; the normalizer decides what counts as
    a number, so `True` stays a bool here and `"fast"` is not a validation error.
    """

    x: Any = None
    y: Any = None
    z: Any = None


class Sample(BaseModel):
    """Raw sample as posted by a wearable device."""

    model_config = ConfigDict(populate_by_name=True)

    subject_id: str | int
    heart_rate: Any = Field(default=None, description="Raw device value, coerced by the normalizer")
    acceleration: Acceleration | None = Field(
        default=None, validation_alias=AliasChoices("acceleration", "accel")
    )

    @field_validator("acceleration", mode="before")
    @classmethod
    def non_mapping_acceleration_is_none(cls, v: Any) -> Any:
        if isinstance(v, Acceleration | Mapping):
            return v
        return None

    @field_validator("subject_id")
    @classmethod
    def subject_id_not_empty(cls, v: str | int) -> str | int:
        if isinstance(v, str) and not v.strip():
            raise ValueError("subject_id must not be empty")
        return v


class NormalizedSample(BaseModel):
    """Typed view of a sample where every unusable field is None."""

    model_config = ConfigDict(frozen=True)

    heart_rate: float | None = None
    accel_x: float | None = None
    accel_y: float | None = None
    accel_z: float | None = None

    @property
    def has_full_acceleration(self) -> bool:
        return None not in (self.accel_x, self.accel_y, self.accel_z)


class Subject(BaseModel):
    """Monitored person, as known to the subject store."""

    model_config = ConfigDict(frozen=True)

    id: str | int
    display_name: str
    emergency_contact: str | None = Field(
        default=None, description="Phone number or other recipient identifier"
    )

    @field_validator("emergency_contact")
    @classmethod
    def blank_contact_is_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()


class EmergencyOutcome(BaseModel):
    """Result of running the rule sequence over one sample."""

    model_config = ConfigDict(frozen=True)

    triggered: bool
    reason: str | None = None
    severity_rule: RuleKind = RuleKind.NONE

    @classmethod
    def clear(cls) -> "EmergencyOutcome":
        return cls(triggered=False, reason=None, severity_rule=RuleKind.NONE)

    @classmethod
    def emergency(cls, rule: RuleKind, reason: str) -> "EmergencyOutcome":
        return cls(triggered=True, reason=reason, severity_rule=rule)


class AuditRecord(BaseModel):
    """One entry of the append-only emergency log."""

    model_config = ConfigDict(frozen=True)

    subject_name: str
    contact: str | None
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def to_line(self) -> str:
        """Render as a newline-terminated audit log line."""
        ts = self.timestamp.astimezone(UTC).isoformat(timespec="milliseconds")
        ts = ts.replace("+00:00", "Z")
        contact = self.contact if self.contact is not None else "null"
        return (
            f"{ts} | EMERGENCY | user:{self.subject_name} | contact:{contact} | msg:{self.message}\n"
        )


class IngestionResult(BaseModel):
    """What the ingestion endpoint gets back for one sample."""

    triggered: bool
    warning: str | None = Field(
        default=None, description="Set when the emergency check itself could not complete"
    )
