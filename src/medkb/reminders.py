"""
Medication reminders and intake logs.

Reminders are never deleted: stopping one flips ``is_active`` off. Intake is
recorded as append-only ``medication_logs`` rows.
"""

import datetime
import typing
from dataclasses import dataclass, field

from .medication import Medication
from .store import MEDICATION_LOGS, MEDICATION_REMINDERS, MEDICATIONS, KnowledgeStore

FREQUENCIES = {"daily", "twice_daily", "three_times_daily", "weekly", "as_needed"}


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass
class Reminder:
    """
    Attributes:
        user_id: Opaque identity the reminder belongs to.
        medication_id: Store id of the medication.
        schedule_time: "HH:MM", 24-hour clock.
        frequency: One of FREQUENCIES.
        start_date: ISO date.
        end_date: ISO date or None for open-ended.
    """

    user_id: str
    medication_id: int
    schedule_time: str
    frequency: str = "daily"
    start_date: str = field(default_factory=lambda: _now().date().isoformat())
    end_date: typing.Optional[str] = None
    is_active: bool = True
    id: typing.Optional[int] = None
    medication: typing.Optional[Medication] = None

    def __post_init__(self):
        try:
            datetime.datetime.strptime(self.schedule_time, "%H:%M")
        except (TypeError, ValueError):
            raise ValueError(f"schedule_time must look like HH:MM, got {self.schedule_time!r}")
        if self.frequency not in FREQUENCIES:
            raise ValueError(f"Unknown reminder frequency: {self.frequency!r}")

    def to_record(self) -> dict[str, typing.Any]:
        record = {
            "user_id": self.user_id,
            "medication_id": self.medication_id,
            "schedule_time": self.schedule_time,
            "frequency": self.frequency,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "is_active": self.is_active,
        }
        if self.id is not None:
            record["id"] = self.id
        return record

    @classmethod
    def from_record(cls, record: dict[str, typing.Any]) -> "Reminder":
        return cls(
            user_id=str(record["user_id"]),
            medication_id=record["medication_id"],
            schedule_time=record["schedule_time"],
            frequency=record.get("frequency") or "daily",
            start_date=record.get("start_date") or "",
            end_date=record.get("end_date"),
            is_active=bool(record.get("is_active", True)),
            id=record.get("id"),
        )


class ReminderBook:
    def __init__(self, store: KnowledgeStore):
        self.store = store

    def add(self, reminder: Reminder) -> None:
        self.store.insert(MEDICATION_REMINDERS, [reminder.to_record()])

    def active(self, user_id: str) -> list[Reminder]:
        """Active reminders for a user, earliest schedule time first, with their medication."""
        records = self.store.select(
            MEDICATION_REMINDERS,
            filters={"user_id": str(user_id), "is_active": True},
            order_by="schedule_time",
        )
        reminders = [Reminder.from_record(r) for r in records]
        medication_ids = sorted({r.medication_id for r in reminders})
        if medication_ids:
            by_id = {
                r["id"]: Medication.from_record(r)
                for r in self.store.select(MEDICATIONS, filters={"id": medication_ids})
            }
            for reminder in reminders:
                reminder.medication = by_id.get(reminder.medication_id)
        return reminders

    def deactivate(self, reminder: Reminder) -> None:
        if reminder.id is None:
            raise ValueError("Only stored reminders can be deactivated")
        reminder.is_active = False
        self.store.upsert(MEDICATION_REMINDERS, [reminder.to_record()], "id")

    def mark_taken(self, reminder: Reminder, verified_by_face: bool = False) -> None:
        if reminder.id is None:
            raise ValueError("Only stored reminders can be marked as taken")
        now = _now().isoformat()
        self.store.insert(
            MEDICATION_LOGS,
            [
                {
                    "reminder_id": reminder.id,
                    "user_id": reminder.user_id,
                    "scheduled_time": now,
                    "taken_time": now,
                    "status": "taken",
                    "verified_by_face": verified_by_face,
                    "created_at": now,
                }
            ],
        )

    def taken_today(self, user_id: str) -> set[int]:
        """Ids of reminders with a 'taken' log since midnight UTC."""
        today = _now().date().isoformat()
        logs = self.store.select(MEDICATION_LOGS, filters={"user_id": str(user_id), "status": "taken"})
        return {log["reminder_id"] for log in logs if str(log.get("created_at") or "") >= today}
