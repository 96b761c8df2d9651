from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, Field


@dataclass(slots=True, frozen=True)
class ChangeEvent:
    """A touched path and its modification time (seconds since the epoch)."""

    path: str
    observed_at: float


class ProcessResult(BaseModel):
    source_path: str
    target_path: str
    written: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    errors: dict[str, str] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors
