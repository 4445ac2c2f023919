from __future__ import annotations

import dataclasses
import datetime
import re
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

TIP_PREFIX = "Tips:"

_WHITESPACE_RE = re.compile(r"\s+")


class MeaningLanguage(str, Enum):
    """Language the meaning text is written in."""
    CHINESE = "zh"
    ENGLISH = "en"

    @property
    def display_name(self) -> str:
        return "中文" if self is MeaningLanguage.CHINESE else "English"


# Labels used by the first release of the app
_LEGACY_LANGUAGES = {"中文": MeaningLanguage.CHINESE, "英文": MeaningLanguage.ENGLISH}


class PartOfSpeech(str, Enum):
    VERB = "verb"
    NOUN = "noun"
    ADJECTIVE = "adjective"
    OTHER = "other"


class MasteryStatus(str, Enum):
    UNSEEN = "unseen"
    LEARNING = "learning"
    FUZZY = "fuzzy"
    FAMILIAR = "familiar"
    MASTERED = "mastered"


@dataclass(frozen=True)
class Conjugation:
    """Present-tense forms, one per grammatical person."""
    yo: str = ""
    tu: str = ""
    el_ella: str = ""
    nosotros: str = ""
    vosotros: str = ""
    ellos_ellas: str = ""

    def slots(self) -> List[Tuple[str, str]]:
        """(person label, form) pairs in paradigm order."""
        return [
            ("yo", self.yo),
            ("tu", self.tu),
            ("el/ella", self.el_ella),
            ("nosotros", self.nosotros),
            ("vosotros", self.vosotros),
            ("ellos/ellas", self.ellos_ellas),
        ]


@dataclass(frozen=True)
class GenderNumberForms:
    masculine_singular: str = ""
    feminine_singular: str = ""
    masculine_plural: str = ""
    feminine_plural: str = ""

    def forms(self) -> List[str]:
        return [
            self.masculine_singular,
            self.feminine_singular,
            self.masculine_plural,
            self.feminine_plural,
        ]


@dataclass(frozen=True)
class WordRecord:
    id: str
    headword: str
    meaning: str
    meaning_language: MeaningLanguage
    part_of_speech: PartOfSpeech
    is_verb: bool
    conjugation: Optional[Conjugation]
    plural_form: Optional[str]
    gender_number_forms: Optional[GenderNumberForms]
    memory_tip: Optional[str]
    created_at: datetime.datetime
    review_stage: int
    next_review_date: datetime.datetime
    last_reviewed_at: Optional[datetime.datetime] = None

    def replace(self, **changes: Any) -> "WordRecord":
        """Return a copy with ``changes`` applied and derived fields rebuilt."""
        return build_word(**{**_record_fields(self), **changes})


def trimmed(text: Optional[str]) -> str:
    return (text or "").strip()


def normalize_answer(text: Optional[str]) -> str:
    """Trim, lowercase and collapse internal whitespace runs to one space."""
    return _WHITESPACE_RE.sub(" ", trimmed(text).lower())


def normalize_tip(text: Optional[str]) -> str:
    """Make sure a memory tip starts with the ``Tips:`` label.

    Returns an empty string for blank input.
    """
    value = trimmed(text)
    if not value:
        return ""
    if value.lower().startswith("tips"):
        content = value[4:].lstrip(":： ").strip()
        return f"{TIP_PREFIX} {content}" if content else TIP_PREFIX
    return f"{TIP_PREFIX} {value}"


def utc(value: datetime.datetime) -> datetime.datetime:
    """Attach UTC to naive datetimes, convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.UTC)
    return value.astimezone(datetime.UTC)


def new_word_id() -> str:
    return uuid.uuid4().hex


def coerce_meaning_language(value: Any) -> MeaningLanguage:
    if isinstance(value, MeaningLanguage):
        return value
    if value in _LEGACY_LANGUAGES:
        return _LEGACY_LANGUAGES[value]
    try:
        return MeaningLanguage(str(value).lower())
    except ValueError:
        return MeaningLanguage.CHINESE


def coerce_part_of_speech(value: Any) -> Optional[PartOfSpeech]:
    if isinstance(value, PartOfSpeech):
        return value
    if value is None:
        return None
    try:
        return PartOfSpeech(str(value).strip().lower())
    except ValueError:
        return None


def _clean_conjugation(value: Optional[Conjugation]) -> Optional[Conjugation]:
    if value is None:
        return None
    return Conjugation(*(trimmed(form) for _, form in value.slots()))


def _clean_gender_forms(value: Optional[GenderNumberForms]) -> Optional[GenderNumberForms]:
    if value is None:
        return None
    return GenderNumberForms(*(trimmed(form) for form in value.forms()))


def build_word(
    *,
    headword: str,
    meaning: str,
    part_of_speech: Any = None,
    meaning_language: Any = MeaningLanguage.CHINESE,
    conjugation: Optional[Conjugation] = None,
    plural_form: Optional[str] = None,
    gender_number_forms: Optional[GenderNumberForms] = None,
    memory_tip: Optional[str] = None,
    created_at: Optional[datetime.datetime] = None,
    review_stage: int = 0,
    next_review_date: Optional[datetime.datetime] = None,
    last_reviewed_at: Optional[datetime.datetime] = None,
    id: Optional[str] = None,
    is_verb: Optional[bool] = None,
) -> WordRecord:
    """Build a fully populated, validated ``WordRecord``.

    Every path that creates a record (new words, edits, decoding stored or
    imported data) goes through here, so derived fields are filled in one
    place:

    * text fields are trimmed, an empty plural becomes ``None``
    * ``part_of_speech`` falls back to ``verb`` when a legacy ``is_verb`` flag
      is set, otherwise ``other``
    * ``is_verb`` is recomputed from part of speech and conjugation
    * ``review_stage`` is clamped to the review interval table
    * a record with ``review_stage > 0`` but no ``last_reviewed_at`` has
      clearly been reviewed before, so ``created_at`` is used as its last
      review
    * ``next_review_date`` defaults to the anchor plus the stage interval
    * the memory tip carries the ``Tips:`` label
    """
    from .scheduler import clamp_stage, next_due_date

    created = utc(created_at) if created_at else datetime.datetime.now(datetime.UTC)
    part = coerce_part_of_speech(part_of_speech)
    if part is None:
        part = PartOfSpeech.VERB if is_verb else PartOfSpeech.OTHER
    conj = _clean_conjugation(conjugation)
    stage = clamp_stage(int(review_stage))
    last_reviewed = utc(last_reviewed_at) if last_reviewed_at else None
    if last_reviewed is None and int(review_stage) > 0:
        last_reviewed = created
    if next_review_date is None:
        next_review = next_due_date(last_reviewed or created, stage)
    else:
        next_review = utc(next_review_date)
    plural = trimmed(plural_form)
    tip = normalize_tip(memory_tip)

    return WordRecord(
        id=id or new_word_id(),
        headword=trimmed(headword),
        meaning=trimmed(meaning),
        meaning_language=coerce_meaning_language(meaning_language),
        part_of_speech=part,
        is_verb=part is PartOfSpeech.VERB or conj is not None,
        conjugation=conj,
        plural_form=plural or None,
        gender_number_forms=_clean_gender_forms(gender_number_forms),
        memory_tip=tip or None,
        created_at=created,
        review_stage=stage,
        next_review_date=next_review,
        last_reviewed_at=last_reviewed,
    )


def _record_fields(word: WordRecord) -> Dict[str, Any]:
    return {field.name: getattr(word, field.name) for field in dataclasses.fields(word)}


# -- derived views -----------------------------------------------------------

def variants(word: WordRecord) -> List[str]:
    """Headword plus every non-empty inflected form, deduplicated."""
    candidates = [word.headword]
    if word.conjugation is not None:
        candidates.extend(form for _, form in word.conjugation.slots())
    if word.plural_form:
        candidates.append(word.plural_form)
    if word.gender_number_forms is not None:
        candidates.extend(word.gender_number_forms.forms())

    unique: List[str] = []
    seen = set()
    for value in (trimmed(c) for c in candidates):
        key = normalize_answer(value)
        if not key or key in seen:
            continue
        seen.add(key)
        unique.append(value)
    return unique


def matches_variant(word: WordRecord, key: str) -> bool:
    normalized = normalize_answer(key)
    if not normalized:
        return False
    return any(normalize_answer(v) == normalized for v in variants(word))


def matches_search(word: WordRecord, key: str) -> bool:
    normalized = normalize_answer(key)
    if not normalized:
        return True
    if normalized in normalize_answer(word.meaning):
        return True
    return any(normalized in normalize_answer(v) for v in variants(word))


def mastery_status(word: WordRecord) -> MasteryStatus:
    if word.last_reviewed_at is None:
        return MasteryStatus.UNSEEN
    if word.review_stage <= 0:
        return MasteryStatus.LEARNING
    if word.review_stage == 1:
        return MasteryStatus.FUZZY
    if word.review_stage == 2:
        return MasteryStatus.FAMILIAR
    return MasteryStatus.MASTERED


def part_of_speech_label(word: WordRecord) -> str:
    """Primary part of speech plus the roles implied by the filled forms."""
    labels = [word.part_of_speech.value]
    if word.part_of_speech is not PartOfSpeech.VERB and word.conjugation is not None:
        labels.append(PartOfSpeech.VERB.value)
    if word.part_of_speech is not PartOfSpeech.NOUN and word.plural_form:
        labels.append(PartOfSpeech.NOUN.value)
    if word.part_of_speech is not PartOfSpeech.ADJECTIVE and word.gender_number_forms is not None:
        labels.append(PartOfSpeech.ADJECTIVE.value)
    return "/".join(dict.fromkeys(labels))


# -- JSON codec --------------------------------------------------------------

_CONJUGATION_KEYS = {
    "yo": "yo",
    "tu": "tu",
    "el_ella": "elElla",
    "nosotros": "nosotros",
    "vosotros": "vosotros",
    "ellos_ellas": "ellosEllas",
}

_GENDER_KEYS = {
    "masculine_singular": "masculineSingular",
    "feminine_singular": "feminineSingular",
    "masculine_plural": "masculinePlural",
    "feminine_plural": "femininePlural",
}


def format_timestamp(value: datetime.datetime) -> str:
    return utc(value).isoformat()


def parse_timestamp(value: Any) -> Optional[datetime.datetime]:
    """Accept ISO-8601 strings or Unix seconds."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime.datetime):
        return utc(value)
    if isinstance(value, (int, float)):
        return datetime.datetime.fromtimestamp(value, datetime.UTC)
    return utc(datetime.datetime.fromisoformat(str(value)))


def conjugation_to_dict(value: Conjugation) -> Dict[str, str]:
    return {wire: getattr(value, attr) for attr, wire in _CONJUGATION_KEYS.items()}


def conjugation_from_dict(data: Optional[Dict[str, Any]]) -> Optional[Conjugation]:
    if not isinstance(data, dict):
        return None
    return Conjugation(**{attr: str(data.get(wire) or "") for attr, wire in _CONJUGATION_KEYS.items()})


def gender_forms_to_dict(value: GenderNumberForms) -> Dict[str, str]:
    return {wire: getattr(value, attr) for attr, wire in _GENDER_KEYS.items()}


def gender_forms_from_dict(data: Optional[Dict[str, Any]]) -> Optional[GenderNumberForms]:
    if not isinstance(data, dict):
        return None
    return GenderNumberForms(**{attr: str(data.get(wire) or "") for attr, wire in _GENDER_KEYS.items()})


def word_to_dict(word: WordRecord) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": word.id,
        "headword": word.headword,
        "meaning": word.meaning,
        "meaningLanguage": word.meaning_language.value,
        "partOfSpeech": word.part_of_speech.value,
        "isVerb": word.is_verb,
        "conjugation": conjugation_to_dict(word.conjugation) if word.conjugation else None,
        "pluralForm": word.plural_form,
        "genderNumberForms": gender_forms_to_dict(word.gender_number_forms) if word.gender_number_forms else None,
        "memoryTip": word.memory_tip,
        "createdAt": format_timestamp(word.created_at),
        "reviewStage": word.review_stage,
        "nextReviewDate": format_timestamp(word.next_review_date),
        "lastReviewedAt": format_timestamp(word.last_reviewed_at) if word.last_reviewed_at else None,
    }
    return data


def word_from_dict(data: Dict[str, Any]) -> WordRecord:
    """Decode a word, accepting the legacy key names of older backups."""
    headword = data.get("headword", data.get("spanish"))
    meaning = data.get("meaning", data.get("chinese"))
    if headword is None or meaning is None:
        raise ValueError("word entry needs a headword and a meaning")
    created_at = parse_timestamp(data.get("createdAt"))
    if created_at is None:
        raise ValueError(f"word entry '{headword}' has no createdAt")

    return build_word(
        id=str(data["id"]) if data.get("id") else None,
        headword=str(headword),
        meaning=str(meaning),
        meaning_language=data.get("meaningLanguage", MeaningLanguage.CHINESE),
        part_of_speech=data.get("partOfSpeech"),
        is_verb=bool(data.get("isVerb", False)),
        conjugation=conjugation_from_dict(data.get("conjugation")),
        plural_form=data.get("pluralForm", data.get("nounPlural")),
        gender_number_forms=gender_forms_from_dict(data.get("genderNumberForms", data.get("adjectiveForms"))),
        memory_tip=data.get("memoryTip", data.get("memoryTips")),
        created_at=created_at,
        review_stage=int(data.get("reviewStage", 0)),
        next_review_date=parse_timestamp(data.get("nextReviewDate")),
        last_reviewed_at=parse_timestamp(data.get("lastReviewedAt")),
    )
