import datetime
import json

from llm_learn_spanish.backup import (
    DEFAULT_REMINDER_HOUR,
    StudySnapshot,
    default_reminder_time,
    export_backup,
    import_backup,
)
from llm_learn_spanish.words import Conjugation, build_word

NOW = datetime.datetime(2026, 1, 5, 12, 0, tzinfo=datetime.UTC)


def test_export_layout() -> None:
    word = build_word(headword="hablar", meaning="说", conjugation=Conjugation(yo="hablo"), created_at=NOW)
    snapshot = StudySnapshot(words=[word], reminder_time=NOW, reminders_enabled=True)
    data = json.loads(export_backup(snapshot))

    assert set(data) == {"words", "reminderTime", "remindersEnabled"}
    assert data["reminderTime"] == NOW.isoformat()
    assert data["remindersEnabled"] is True
    entry = data["words"][0]
    assert entry["headword"] == "hablar"
    assert entry["meaning"] == "说"
    assert entry["conjugation"]["yo"] == "hablo"
    assert entry["isVerb"] is True


def test_import_fills_missing_settings() -> None:
    snapshot = import_backup(json.dumps({
        "words": [{"spanish": "casa", "chinese": "房子", "createdAt": NOW.isoformat()}],
    }))
    assert [w.headword for w in snapshot.words] == ["casa"]
    assert snapshot.reminders_enabled is False
    assert snapshot.reminder_time.tzinfo is not None


def test_default_reminder_is_local_evening() -> None:
    reminder = default_reminder_time(NOW)
    assert reminder.tzinfo == datetime.UTC
    assert reminder.astimezone().hour == DEFAULT_REMINDER_HOUR
    assert reminder.astimezone().minute == 0
