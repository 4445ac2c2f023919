"""
Whole-store snapshot and its JSON form.

The same structure is used for backup export/import:

    {
      "words": [ {...word...}, ... ],
      "reminderTime": "2026-01-06T12:00:00+00:00",
      "remindersEnabled": false
    }
"""
import datetime
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .words import WordRecord, format_timestamp, parse_timestamp, word_from_dict, word_to_dict

DEFAULT_REMINDER_HOUR = 20


def default_reminder_time(now: Optional[datetime.datetime] = None) -> datetime.datetime:
    """Today at 20:00 local time, expressed in UTC."""
    local_now = (now or datetime.datetime.now(datetime.UTC)).astimezone()
    local = local_now.replace(hour=DEFAULT_REMINDER_HOUR, minute=0, second=0, microsecond=0)
    return local.astimezone(datetime.UTC)


@dataclass
class StudySnapshot:
    words: List[WordRecord] = field(default_factory=list)
    reminder_time: datetime.datetime = field(default_factory=default_reminder_time)
    reminders_enabled: bool = False


def snapshot_to_dict(snapshot: StudySnapshot) -> Dict[str, Any]:
    return {
        "words": [word_to_dict(w) for w in snapshot.words],
        "reminderTime": format_timestamp(snapshot.reminder_time),
        "remindersEnabled": snapshot.reminders_enabled,
    }


def snapshot_from_dict(data: Dict[str, Any]) -> StudySnapshot:
    if not isinstance(data, dict) or not isinstance(data.get("words"), list):
        raise ValueError("Backup must be an object with a 'words' list.")
    if not all(isinstance(item, dict) for item in data["words"]):
        raise ValueError("Every backup word must be an object.")
    words = []
    seen_ids = set()
    for index, item in enumerate(data["words"]):
        try:
            word = word_from_dict(item)
        except (TypeError, AttributeError, OverflowError, OSError) as e:
            raise ValueError(f"Backup word #{index + 1} is malformed: {e}") from e
        if word.id in seen_ids:
            raise ValueError(f"Backup contains duplicate word id '{word.id}'.")
        seen_ids.add(word.id)
        words.append(word)
    reminder_time = parse_timestamp(data.get("reminderTime")) or default_reminder_time()
    return StudySnapshot(
        words=words,
        reminder_time=reminder_time,
        reminders_enabled=bool(data.get("remindersEnabled", False)),
    )


def export_backup(snapshot: StudySnapshot) -> str:
    return json.dumps(snapshot_to_dict(snapshot), ensure_ascii=False, indent=2)


def import_backup(text: Union[str, bytes]) -> StudySnapshot:
    """Parse a backup document. Raises ``ValueError`` for malformed input."""
    return snapshot_from_dict(json.loads(text))
