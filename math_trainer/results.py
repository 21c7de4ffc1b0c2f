from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

HISTORY_LIMIT = 50


class StopReason(str, Enum):
    USER = "user"
    FINISHED = "finished"


@dataclass(frozen=True, slots=True)
class SessionRecord:
    """Persistable summary of one completed or stopped drill run.

    ``total`` is always the size of the generated batch, even when the run
    was stopped before every problem was attempted.
    """

    date: str
    solved: int
    total: int
    duration_s: int
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "solved": int(self.solved),
            "total": int(self.total),
            "durationSec": int(self.duration_s),
            "reason": str(self.reason),
        }

    @classmethod
    def from_dict(cls, data: object) -> "SessionRecord | None":
        """Parse a stored entry; returns None when the entry is malformed."""

        if not isinstance(data, dict):
            return None
        date = data.get("date")
        if not isinstance(date, str) or date.strip() == "":
            return None
        try:
            solved = _as_int(data.get("solved"))
            total = _as_int(data.get("total"))
            duration_s = _as_int(data.get("durationSec"))
        except (TypeError, ValueError):
            return None
        if solved < 0 or total < 0 or duration_s < 0:
            return None
        reason = data.get("reason")
        return cls(
            date=date,
            solved=solved,
            total=total,
            duration_s=duration_s,
            reason="" if reason is None else str(reason),
        )


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    """ISO-8601 UTC with milliseconds and a trailing ``Z``."""

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    stamp = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


def _as_int(value: object) -> int:
    # bool is an int subclass but never a valid count.
    if isinstance(value, bool):
        raise TypeError("bool is not a count")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError("non-integral count")
        return int(value)
    if isinstance(value, int):
        return value
    raise TypeError(f"unsupported count type: {type(value).__name__}")
