import datetime
import pytest
from sqlalchemy import create_engine

from llm_learn_spanish import db
from llm_learn_spanish.backup import StudySnapshot
from llm_learn_spanish.store import StudyStore
from llm_learn_spanish.words import Conjugation, GenderNumberForms, build_word

NOW = datetime.datetime(2026, 1, 5, 12, 0, 30, 1234, tzinfo=datetime.UTC)


@pytest.fixture(autouse=True)
def setup_db(tmp_path, monkeypatch):
    # Use a temporary SQLite DB, and rebind engine/session to it
    test_db = str(tmp_path / "test.db")
    monkeypatch.setenv("LLM_ES_DB", test_db)
    db.engine = create_engine(f"sqlite:///{test_db}")
    db.SessionLocal = db.sessionmaker(bind=db.engine, expire_on_commit=False)
    yield


def test_empty_database_loads_defaults():
    assert not db.is_db_initialized()
    snapshot = db.load_snapshot()
    assert snapshot.words == []
    assert snapshot.reminders_enabled is False


def test_save_and_load_round_trip():
    verb = build_word(headword="hablar", meaning="说", conjugation=Conjugation(yo="hablo", tu="hablas"),
                      memory_tip="talk", created_at=NOW)
    adj = build_word(headword="rojo", meaning="红色",
                     gender_number_forms=GenderNumberForms("rojo", "roja", "rojos", "rojas"),
                     created_at=NOW, review_stage=2, last_reviewed_at=NOW)
    noun = build_word(headword="casa", meaning="房子", plural_form="casas", meaning_language="en", created_at=NOW)
    snapshot = StudySnapshot(words=[verb, adj, noun], reminder_time=NOW, reminders_enabled=True)

    db.save_snapshot(snapshot)
    assert db.is_db_initialized()
    loaded = db.load_snapshot()

    assert loaded.words == [verb, adj, noun]
    assert all(w.created_at.tzinfo is not None for w in loaded.words)
    assert loaded.reminder_time == NOW
    assert loaded.reminders_enabled is True


def test_save_replaces_previous_rows():
    first = build_word(headword="uno", meaning="一", created_at=NOW)
    second = build_word(headword="dos", meaning="二", created_at=NOW)
    db.save_snapshot(StudySnapshot(words=[first, second]))
    db.save_snapshot(StudySnapshot(words=[second]))

    session = db.get_session()
    assert session.query(db.WordRow).count() == 1
    assert session.query(db.StudySettings).count() == 1
    session.close()
    assert db.load_snapshot().words == [second]


def test_store_persists_through_database_backend():
    store = StudyStore(db.DatabaseBackend())
    casa = store.add_word("casa", "房子", plural_form="casas")
    store.add_word("perro", "狗")
    store.apply_session_result(casa.id, 0)
    store.set_reminders_enabled(True)

    reopened = StudyStore(db.DatabaseBackend())
    assert [w.headword for w in reopened.words] == ["perro", "casa"]
    assert reopened.get(casa.id).review_stage == 1
    assert reopened.get(casa.id) == store.get(casa.id)
    assert reopened.reminders_enabled is True
