from __future__ import annotations
from sqlalchemy import create_engine, Integer, String, DateTime, Text, Boolean, JSON
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session, Mapped, mapped_column
import datetime
import os
from typing import Optional, List, Any, Dict

from .backup import StudySnapshot, default_reminder_time
from .words import (
    WordRecord,
    build_word,
    conjugation_from_dict,
    conjugation_to_dict,
    gender_forms_from_dict,
    gender_forms_to_dict,
    utc,
)

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"


class Base(DeclarativeBase):
    pass
DB_PATH: str = os.environ.get("LLM_ES_DB", "spanish_learning.db")
engine = create_engine(f"sqlite:///{DB_PATH}")
# Prevent attribute expiration on commit so returned objects remain accessible
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


class WordRow(Base):
    __tablename__ = "words"
    id: Mapped[str] = mapped_column(String, primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)  # order within the word list
    headword: Mapped[str] = mapped_column(String, nullable=False)
    meaning: Mapped[str] = mapped_column(Text, nullable=False, default="")
    meaning_language: Mapped[str] = mapped_column(String, nullable=False, default="zh")
    part_of_speech: Mapped[str] = mapped_column(String, nullable=False, default="other")
    is_verb: Mapped[bool] = mapped_column(Boolean, default=False)
    conjugation: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)  # yo/tu/elElla/...
    plural_form: Mapped[Optional[str]] = mapped_column(String)
    gender_number_forms: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)
    memory_tip: Mapped[Optional[str]] = mapped_column(Text)
    # SRS fields, stored as naive UTC
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False)
    review_stage: Mapped[int] = mapped_column(Integer, default=0)
    next_review_date: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False)
    last_reviewed_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime)


class StudySettings(Base):
    __tablename__ = "study_settings"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    reminder_time: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False)
    reminders_enabled: Mapped[bool] = mapped_column(Boolean, default=False)


def is_db_initialized() -> bool:
    """Check if the database is already initialized by checking if tables exist."""
    from sqlalchemy import inspect
    inspector = inspect(engine)
    table_names = inspector.get_table_names()
    return {"words", "study_settings"}.issubset(set(table_names))


def init_db() -> None:
    """Initialize the database by creating all tables."""
    Base.metadata.create_all(bind=engine)


def get_session() -> Session:
    return SessionLocal()


def _naive_utc(value: datetime.datetime) -> datetime.datetime:
    return utc(value).replace(tzinfo=None)


def _row_from_word(word: WordRecord, position: int) -> WordRow:
    return WordRow(
        id=word.id,
        position=position,
        headword=word.headword,
        meaning=word.meaning,
        meaning_language=word.meaning_language.value,
        part_of_speech=word.part_of_speech.value,
        is_verb=word.is_verb,
        conjugation=conjugation_to_dict(word.conjugation) if word.conjugation else None,
        plural_form=word.plural_form,
        gender_number_forms=gender_forms_to_dict(word.gender_number_forms) if word.gender_number_forms else None,
        memory_tip=word.memory_tip,
        created_at=_naive_utc(word.created_at),
        review_stage=word.review_stage,
        next_review_date=_naive_utc(word.next_review_date),
        last_reviewed_at=_naive_utc(word.last_reviewed_at) if word.last_reviewed_at else None,
    )


def _word_from_row(row: WordRow) -> WordRecord:
    return build_word(
        id=row.id,
        headword=row.headword,
        meaning=row.meaning,
        meaning_language=row.meaning_language,
        part_of_speech=row.part_of_speech,
        is_verb=row.is_verb,
        conjugation=conjugation_from_dict(row.conjugation),
        plural_form=row.plural_form,
        gender_number_forms=gender_forms_from_dict(row.gender_number_forms),
        memory_tip=row.memory_tip,
        created_at=row.created_at,
        review_stage=row.review_stage,
        next_review_date=row.next_review_date,
        last_reviewed_at=row.last_reviewed_at,
    )


def load_snapshot() -> StudySnapshot:
    """Read the whole word list and settings. An empty database yields defaults."""
    if not is_db_initialized():
        return StudySnapshot()
    session: Session = get_session()
    rows: List[WordRow] = session.query(WordRow).order_by(WordRow.position.asc()).all()
    settings: Optional[StudySettings] = session.get(StudySettings, 1)
    session.close()

    words = [_word_from_row(row) for row in rows]
    if settings is None:
        return StudySnapshot(words=words)
    return StudySnapshot(
        words=words,
        reminder_time=utc(settings.reminder_time) if settings.reminder_time else default_reminder_time(),
        reminders_enabled=bool(settings.reminders_enabled),
    )


def save_snapshot(snapshot: StudySnapshot) -> None:
    """Replace the stored state with ``snapshot`` in a single transaction."""
    init_db()
    session: Session = get_session()
    try:
        session.query(WordRow).delete()
        session.add_all(_row_from_word(word, i) for i, word in enumerate(snapshot.words))
        settings: Optional[StudySettings] = session.get(StudySettings, 1)
        if settings is None:
            settings = StudySettings(id=1, reminder_time=_naive_utc(snapshot.reminder_time))
            session.add(settings)
        settings.reminder_time = _naive_utc(snapshot.reminder_time)
        settings.reminders_enabled = snapshot.reminders_enabled
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
    if DEBUG_MODE:
        print(f"💾 Saved {len(snapshot.words)} words to the database")


class DatabaseBackend:
    """Persistence used by ``StudyStore``: whole-snapshot load and save."""

    def load(self) -> StudySnapshot:
        return load_snapshot()

    def save(self, snapshot: StudySnapshot) -> None:
        save_snapshot(snapshot)
