from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime


@dataclass
class TrackedDocument:
    name: str
    first_seen_at: datetime | None = None
    accrued_minutes: float = 0.0
    project: str = ""
    notes: str = ""

    def copy(self) -> TrackedDocument:
        return replace(self)


@dataclass(frozen=True)
class Project:
    id: int
    name: str


@dataclass(frozen=True)
class DocumentRow:
    name: str
    accrued_minutes: float
    project: str
    notes: str


@dataclass(frozen=True)
class SaveResult:
    saved: int
    failed: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.failed
