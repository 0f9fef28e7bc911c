"""TSDB base abstractions."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Mapping, Optional, Protocol

FIELD_TYPES = (bool, int, float, str)


class ConstructionError(ValueError):
    """Raised synchronously when a sender or a point cannot be built."""


class SenderConfigError(ConstructionError):
    """Store endpoint, credentials or sender settings are unusable."""


class PointValidationError(ConstructionError):
    """A point cannot be built from the given measurement, tags and fields."""


def _reject_newline(measurement: str, what: str, text: str) -> None:
    # line protocol has no escape for line breaks
    if "\n" in text or "\r" in text:
        raise PointValidationError(f"{measurement}: {what} {text!r} contains a line break")


@dataclass(frozen=True, eq=False)
class Point:
    """A single timeseries point.

    Tag and field mappings are copied and exposed read-only, so a point never
    changes after creation. ``ts`` is the wall-clock capture time written to the
    store; ``captured_at`` is the monotonic reading taken at the same moment and
    is what expiry is measured against.
    """

    measurement: str
    ts: datetime
    tags: Mapping[str, str]
    fields: Mapping[str, object]
    captured_at: Optional[float] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.measurement, str) or not self.measurement:
            raise PointValidationError("measurement must be a non-empty string")
        _reject_newline(self.measurement, "measurement", self.measurement)
        if not isinstance(self.ts, datetime):
            raise PointValidationError(f"timestamp must be a datetime, got {type(self.ts).__name__}")

        tags = {}
        for key, value in (self.tags or {}).items():
            if not isinstance(key, str) or not key:
                raise PointValidationError(f"{self.measurement}: tag keys must be non-empty strings")
            if value is None or str(value) == "":
                # InfluxDB ignores tags without a value
                continue
            _reject_newline(self.measurement, "tag key", key)
            _reject_newline(self.measurement, "tag value", str(value))
            tags[key] = str(value)

        fields = {}
        for key, value in (self.fields or {}).items():
            if not isinstance(key, str) or not key:
                raise PointValidationError(f"{self.measurement}: field keys must be non-empty strings")
            _reject_newline(self.measurement, "field key", key)
            if not isinstance(value, FIELD_TYPES):
                raise PointValidationError(
                    f"{self.measurement}: unsupported type {type(value).__name__} for field {key!r}"
                )
            if isinstance(value, float) and not math.isfinite(value):
                raise PointValidationError(f"{self.measurement}: field {key!r} is not finite ({value})")
            fields[key] = value
        if not fields:
            raise PointValidationError(f"{self.measurement}: a point needs at least one field")

        object.__setattr__(self, "tags", MappingProxyType(tags))
        object.__setattr__(self, "fields", MappingProxyType(fields))


class TimeseriesStore(Protocol):
    """Protocol for TSDB backends.

    ``write_points`` delivers one chunk and raises on any failure.
    """

    def write_points(self, points: list[Point], database: str) -> None:
        ...

    def close(self) -> None:
        ...
