"""Segment parsing and validation.

Turns the caller-supplied `segments` payload into an ordered, immutable set of
time ranges. Malformed entries are dropped silently; the request only fails
when nothing usable is left.
"""
import json
import math
from dataclasses import dataclass
from typing import Any, Iterator, Tuple


class ValidationError(Exception):
    """Client-side input error (HTTP 400)."""

    def __init__(self, message: str, details: str = ""):
        super().__init__(message)
        self.message = message
        self.details = details


@dataclass(frozen=True)
class Segment:
    """A time range to keep, in seconds."""
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start

    def __repr__(self):
        return f"Segment({self.start:.2f}-{self.end:.2f}, dur={self.duration:.2f}s)"


@dataclass(frozen=True)
class SegmentSet:
    """Non-empty ordered collection of valid segments."""
    segments: Tuple[Segment, ...]

    def __post_init__(self):
        if not self.segments:
            raise ValidationError("no valid segments")

    def __len__(self) -> int:
        return len(self.segments)

    def __iter__(self) -> Iterator[Segment]:
        return iter(self.segments)

    def __getitem__(self, index: int) -> Segment:
        return self.segments[index]

    @property
    def total_duration(self) -> float:
        return sum(seg.duration for seg in self.segments)


def _is_number(value: Any) -> bool:
    # bool is an int subclass but never a valid timestamp
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # ints too large for a float
        return False


def coerce_segment(entry: Any) -> Segment | None:
    """Return a Segment for a well-formed entry, None otherwise."""
    if not isinstance(entry, dict):
        return None

    start = entry.get("start")
    end = entry.get("end")
    if not (_is_number(start) and _is_number(end)):
        return None
    if start < 0 or end <= start:
        return None

    return Segment(start=float(start), end=float(end))


def validate_segments(raw: Any) -> SegmentSet:
    """
    Filter a decoded segments payload down to its valid entries.

    Args:
        raw: JSON-decoded value of the `segments` form field

    Returns:
        SegmentSet preserving the caller's order

    Raises:
        ValidationError: If the payload is not a list, is empty, or has no
            valid entry left after filtering
    """
    if not isinstance(raw, list):
        raise ValidationError(
            "invalid segments",
            "segments must be a JSON array of {start, end} objects"
        )
    if not raw:
        raise ValidationError(
            "invalid segments",
            "at least one segment must be provided"
        )

    valid = tuple(
        seg for seg in (coerce_segment(entry) for entry in raw)
        if seg is not None
    )
    if not valid:
        raise ValidationError(
            "no valid segments",
            "every segment needs numeric start >= 0 and end > start"
        )

    return SegmentSet(valid)


def parse_segments_payload(text: str | None) -> Any:
    """Decode the raw `segments` form field. A missing field reads as `[]`."""
    try:
        return json.loads(text or "[]")
    except json.JSONDecodeError as e:
        raise ValidationError("invalid segments", f"segments is not valid JSON: {e.msg}")
    except ValueError as e:
        # e.g. integer literals over the int string conversion limit
        raise ValidationError("invalid segments", f"segments is not valid JSON: {e}")
