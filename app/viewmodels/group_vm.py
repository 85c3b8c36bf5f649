from __future__ import annotations

from dataclasses import dataclass, field

from app.viewmodels.photo_vm import PhotoVM


@dataclass
class DayGroupVM:
    date_key: str
    label: str | None
    weekday: str | None
    items: list[PhotoVM] = field(default_factory=list)
    albums: list[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.items)
