from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterator, Mapping

from watchstore.domain.errors import ConversionFailed


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Canonical storage text for a timestamp.

    Always UTC with microsecond precision, so lexical order of the stored column matches
    chronological order.
    """
    return _ensure_utc(value).isoformat(timespec="microseconds")


def parse_timestamp(value: str) -> datetime:
    return _ensure_utc(datetime.fromisoformat(value))


@dataclass(frozen=True, slots=True, order=True)
class Record:
    timestamp: datetime

    def __post_init__(self) -> None:
        if not isinstance(self.timestamp, datetime):
            raise TypeError(f"timestamp must be a datetime, got {type(self.timestamp).__name__}")
        object.__setattr__(self, "timestamp", _ensure_utc(self.timestamp))

    @property
    def id(self) -> datetime:
        return self.timestamp

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Record:
        try:
            return cls(timestamp=parse_timestamp(row["timestamp"]))
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise ConversionFailed(f"cannot convert row {row!r}") from exc


class Query(enum.Enum):
    ALL = "all"  # every record, newest first


class Predicate:
    """Base class for delete predicates."""


@dataclass(frozen=True)
class TimestampEquals(Predicate):
    timestamp: datetime


@dataclass(frozen=True)
class MatchAll(Predicate):
    pass


@dataclass(kw_only=True, frozen=True)
class ResultSet:
    rows: tuple[Mapping[str, Any], ...]
    generation: int


@dataclass(kw_only=True, frozen=True)
class Snapshot:
    records: tuple[Record, ...] = field(default_factory=tuple)
    generation: int = 0

    def __iter__(self) -> Iterator[Record]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    @property
    def timestamps(self) -> list[datetime]:
        return [record.timestamp for record in self.records]

    @classmethod
    def empty(cls) -> Snapshot:
        return cls()
