"""
In-memory owner of the word list and study settings.

All changes go through the mutation methods below. Each one persists the
whole snapshot through the backend and then notifies subscribers with an
event name and the new snapshot. The store is the single writer; mutations
are serialized with a lock so background enrichment jobs can write through
the same path as interactive edits.
"""
import datetime
import random
import threading
from typing import Any, Callable, Iterable, List, Optional, Protocol

from . import scheduler
from .backup import StudySnapshot, default_reminder_time, export_backup, import_backup
from .config import DEBUG_MODE
from .session import StudySession, build_session
from .structured import WordAnalysis, resolve_part_of_speech
from .words import (
    Conjugation,
    GenderNumberForms,
    MeaningLanguage,
    PartOfSpeech,
    WordRecord,
    build_word,
    matches_variant,
    normalize_answer,
    normalize_tip,
    trimmed,
    variants,
)

Listener = Callable[[str, StudySnapshot], None]

# Fields a user edit may touch; review state only changes through the scheduler
EDITABLE_FIELDS = {
    "headword",
    "meaning",
    "meaning_language",
    "part_of_speech",
    "conjugation",
    "plural_form",
    "gender_number_forms",
    "memory_tip",
}


class SnapshotBackend(Protocol):
    def load(self) -> StudySnapshot: ...

    def save(self, snapshot: StudySnapshot) -> None: ...


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class StudyStore:
    def __init__(self, backend: Optional[SnapshotBackend] = None, autoload: bool = True) -> None:
        self._backend = backend
        self._lock = threading.RLock()
        self._listeners: List[Listener] = []
        self._words: List[WordRecord] = []
        self._reminder_time = default_reminder_time()
        self._reminders_enabled = False
        self._loaded = False
        if autoload:
            self.load()

    # -- read access --------------------------------------------------------

    @property
    def words(self) -> List[WordRecord]:
        with self._lock:
            return list(self._words)

    @property
    def reminder_time(self) -> datetime.datetime:
        return self._reminder_time

    @property
    def reminders_enabled(self) -> bool:
        return self._reminders_enabled

    def snapshot(self) -> StudySnapshot:
        with self._lock:
            return StudySnapshot(
                words=list(self._words),
                reminder_time=self._reminder_time,
                reminders_enabled=self._reminders_enabled,
            )

    def get(self, word_id: str) -> Optional[WordRecord]:
        with self._lock:
            return next((w for w in self._words if w.id == word_id), None)

    def find(self, key: str) -> Optional[WordRecord]:
        """Look a word up by id, or by any of its surface forms."""
        with self._lock:
            word = self.get(key)
            if word is not None:
                return word
            return next((w for w in self._words if matches_variant(w, key)), None)

    def find_duplicate(self, candidate: WordRecord, exclude_id: Optional[str] = None) -> Optional[WordRecord]:
        """Existing word sharing any normalized surface form with ``candidate``."""
        keys = {normalize_answer(v) for v in variants(candidate)}
        with self._lock:
            for word in self._words:
                if word.id == exclude_id or word.id == candidate.id:
                    continue
                if any(normalize_answer(v) in keys for v in variants(word)):
                    return word
        return None

    def due_words(self, reference: Optional[datetime.datetime] = None) -> List[WordRecord]:
        return scheduler.due_words(self.words, reference or _now())

    def session_words(self, count: int, reference: Optional[datetime.datetime] = None) -> List[WordRecord]:
        return scheduler.session_words(self.words, count, reference or _now())

    # -- change notification ------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener(event, snapshot)``; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _persist(self, event: str) -> None:
        if not self._loaded:
            return
        snapshot = self.snapshot()
        if self._backend is not None:
            self._backend.save(snapshot)
        for listener in list(self._listeners):
            listener(event, snapshot)

    # -- loading ------------------------------------------------------------

    def load(self) -> None:
        """Read the backend snapshot, fixing review dates that drifted from the schedule."""
        with self._lock:
            snapshot = self._backend.load() if self._backend is not None else StudySnapshot()
            normalized = [scheduler.normalize_review_date(w) for w in snapshot.words]
            changed = sum(1 for old, new in zip(snapshot.words, normalized) if old != new)
            self._words = normalized
            self._reminder_time = snapshot.reminder_time
            self._reminders_enabled = snapshot.reminders_enabled
            self._loaded = True
            if changed:
                print(f"🔧 Normalized review dates for {changed} words")
                self._persist("loaded")

    # -- word mutations -----------------------------------------------------

    def _update_word(self, word_id: str, transform: Callable[[WordRecord], WordRecord],
                     event: str = "word_updated") -> Optional[WordRecord]:
        with self._lock:
            for index, word in enumerate(self._words):
                if word.id == word_id:
                    updated = transform(word)
                    self._words[index] = updated
                    self._persist(event)
                    return updated
        if DEBUG_MODE:
            print(f"⚠️ No word with id {word_id}")
        return None

    def add_word(self,
                 headword: str,
                 meaning: str,
                 part_of_speech: Any = PartOfSpeech.OTHER,
                 meaning_language: Any = MeaningLanguage.CHINESE,
                 conjugation: Optional[Conjugation] = None,
                 plural_form: Optional[str] = None,
                 gender_number_forms: Optional[GenderNumberForms] = None,
                 memory_tip: Optional[str] = None,
                 now: Optional[datetime.datetime] = None) -> Optional[WordRecord]:
        """Add a new word at the top of the list. Returns None if it duplicates an existing word."""
        created = now or _now()
        word = build_word(
            headword=headword,
            meaning=meaning,
            part_of_speech=part_of_speech,
            meaning_language=meaning_language,
            conjugation=conjugation,
            plural_form=plural_form,
            gender_number_forms=gender_number_forms,
            memory_tip=memory_tip,
            created_at=created,
            review_stage=0,
        )
        if not word.headword:
            raise ValueError("A word needs a headword.")
        with self._lock:
            if self.find_duplicate(word) is not None:
                return None
            self._words.insert(0, word)
            self._persist("word_added")
        return word

    def update_word(self, word_id: str, **changes: Any) -> Optional[WordRecord]:
        """Edit the user-facing fields of a word.

        Returns None when the word does not exist or the new forms collide
        with another word.
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")
        with self._lock:
            word = self.get(word_id)
            if word is None:
                return None
            candidate = word.replace(**changes)
            if not candidate.headword:
                raise ValueError("A word needs a headword.")
            if self.find_duplicate(candidate, exclude_id=word_id) is not None:
                return None
            return self._update_word(word_id, lambda _: candidate)

    def remove_words(self, word_ids: Iterable[str]) -> int:
        ids = set(word_ids)
        with self._lock:
            before = len(self._words)
            self._words = [w for w in self._words if w.id not in ids]
            removed = before - len(self._words)
            if removed:
                self._persist("words_removed")
        return removed

    def apply_analysis(self, word_id: str, analysis: WordAnalysis) -> Optional[WordRecord]:
        """Overwrite the descriptive fields with an analysis result; review state is kept."""
        def transform(word: WordRecord) -> WordRecord:
            language = analysis.language.strip().lower()
            meaning_language = word.meaning_language
            if language in (MeaningLanguage.CHINESE.value, MeaningLanguage.ENGLISH.value):
                meaning_language = MeaningLanguage(language)
            lemma = trimmed(analysis.lemma)
            return word.replace(
                headword=lemma or word.headword,
                meaning=analysis.meaning,
                meaning_language=meaning_language,
                part_of_speech=resolve_part_of_speech(analysis),
                conjugation=analysis.conjugation,
                plural_form=analysis.plural_form,
                gender_number_forms=analysis.gender_number_forms,
            )
        return self._update_word(word_id, transform)

    def update_tips(self, word_id: str, tips: Optional[str]) -> Optional[WordRecord]:
        return self._update_word(word_id, lambda w: w.replace(memory_tip=normalize_tip(tips) or None))

    # -- review mutations ---------------------------------------------------

    def apply_session_result(self, word_id: str, errors: int,
                             now: Optional[datetime.datetime] = None) -> Optional[WordRecord]:
        at = now or _now()
        return self._update_word(word_id, lambda w: scheduler.apply_session_result(w, errors, at),
                                 event="review_updated")

    def advance_review(self, word_id: str, now: Optional[datetime.datetime] = None) -> Optional[WordRecord]:
        at = now or _now()
        return self._update_word(word_id, lambda w: scheduler.advance_review(w, at), event="review_updated")

    def reset_review(self, word_id: str, now: Optional[datetime.datetime] = None) -> Optional[WordRecord]:
        at = now or _now()
        return self._update_word(word_id, lambda w: scheduler.reset_review(w, at), event="review_updated")

    def start_session(self, count: int, rng: Optional[random.Random] = None,
                      shuffle: bool = True) -> StudySession:
        return build_session(self, count, rng=rng, shuffle=shuffle)

    # -- settings -----------------------------------------------------------

    def update_reminder_time(self, when: datetime.datetime) -> None:
        with self._lock:
            self._reminder_time = when if when.tzinfo else when.replace(tzinfo=datetime.UTC)
            self._persist("settings_updated")

    def set_reminders_enabled(self, enabled: bool) -> None:
        with self._lock:
            self._reminders_enabled = bool(enabled)
            self._persist("settings_updated")

    # -- backup -------------------------------------------------------------

    def export_backup(self) -> str:
        return export_backup(self.snapshot())

    def import_backup(self, text: str) -> int:
        """Replace everything with the backup contents. Returns the number of words."""
        snapshot = import_backup(text)
        with self._lock:
            self._words = [scheduler.normalize_review_date(w) for w in snapshot.words]
            self._reminder_time = snapshot.reminder_time
            self._reminders_enabled = snapshot.reminders_enabled
            self._loaded = True
            self._persist("snapshot_replaced")
            return len(self._words)
