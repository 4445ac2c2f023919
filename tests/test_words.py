import datetime

import pytest

from llm_learn_spanish.words import (
    Conjugation,
    GenderNumberForms,
    MasteryStatus,
    MeaningLanguage,
    PartOfSpeech,
    build_word,
    mastery_status,
    matches_search,
    matches_variant,
    normalize_answer,
    normalize_tip,
    part_of_speech_label,
    variants,
    word_from_dict,
    word_to_dict,
)

NOW = datetime.datetime(2026, 1, 5, 12, 0, tzinfo=datetime.UTC)

HABLAR = Conjugation(
    yo="hablo", tu="hablas", el_ella="habla",
    nosotros="hablamos", vosotros="habláis", ellos_ellas="hablan",
)


def test_build_word_fills_defaults() -> None:
    word = build_word(headword="  casa ", meaning=" 房子 ", created_at=NOW)
    assert word.headword == "casa"
    assert word.meaning == "房子"
    assert word.part_of_speech is PartOfSpeech.OTHER
    assert word.meaning_language is MeaningLanguage.CHINESE
    assert word.is_verb is False
    assert word.review_stage == 0
    assert word.last_reviewed_at is None
    assert word.next_review_date == NOW + datetime.timedelta(days=1)
    assert word.id


def test_is_verb_derived_from_conjugation_and_legacy_flag() -> None:
    conjugated = build_word(headword="hablar", meaning="说", conjugation=HABLAR, created_at=NOW)
    assert conjugated.is_verb is True
    assert conjugated.part_of_speech is PartOfSpeech.OTHER

    legacy = build_word(headword="comer", meaning="吃", is_verb=True, created_at=NOW)
    assert legacy.part_of_speech is PartOfSpeech.VERB
    assert legacy.is_verb is True


def test_reviewed_stage_backfills_last_review_and_clamps() -> None:
    word = build_word(headword="perro", meaning="狗", created_at=NOW, review_stage=9)
    assert word.review_stage == 3
    assert word.last_reviewed_at == NOW
    assert word.next_review_date == NOW + datetime.timedelta(days=30)


def test_naive_datetimes_are_treated_as_utc() -> None:
    word = build_word(headword="gato", meaning="猫", created_at=datetime.datetime(2026, 1, 5, 12, 0))
    assert word.created_at == NOW


def test_normalize_answer() -> None:
    assert normalize_answer("  Hola   Mundo\t ") == "hola mundo"
    assert normalize_answer(None) == ""


def test_normalize_tip() -> None:
    assert normalize_tip("think of a house") == "Tips: think of a house"
    assert normalize_tip("tips: casa ~ castle") == "Tips: casa ~ castle"
    assert normalize_tip("Tips：联想") == "Tips: 联想"
    assert normalize_tip("   ") == ""
    assert build_word(headword="a", meaning="b", memory_tip="  ").memory_tip is None


def test_variants_are_ordered_and_deduplicated() -> None:
    word = build_word(
        headword="vivo",
        meaning="活的",
        conjugation=Conjugation(yo="Vivo", tu="vives"),
        gender_number_forms=GenderNumberForms("vivo", "viva", "vivos", "vivas"),
        created_at=NOW,
    )
    assert variants(word) == ["vivo", "vives", "viva", "vivos", "vivas"]


def test_matches_variant_and_search() -> None:
    word = build_word(headword="hablar", meaning="to speak", conjugation=HABLAR, created_at=NOW)
    assert matches_variant(word, "  HABLAMOS ")
    assert not matches_variant(word, "")
    assert not matches_variant(word, "habla mos")
    assert matches_search(word, "")
    assert matches_search(word, "speak")
    assert matches_search(word, "habl")
    assert not matches_search(word, "comer")


@pytest.mark.parametrize("stage, expected", [
    (0, MasteryStatus.LEARNING),
    (1, MasteryStatus.FUZZY),
    (2, MasteryStatus.FAMILIAR),
    (3, MasteryStatus.MASTERED),
])
def test_mastery_status_for_reviewed_words(stage: int, expected: MasteryStatus) -> None:
    word = build_word(headword="x", meaning="y", created_at=NOW, review_stage=stage, last_reviewed_at=NOW)
    assert mastery_status(word) is expected


def test_unseen_iff_never_reviewed() -> None:
    fresh = build_word(headword="x", meaning="y", created_at=NOW)
    assert mastery_status(fresh) is MasteryStatus.UNSEEN
    reviewed = fresh.replace(last_reviewed_at=NOW)
    assert mastery_status(reviewed) is not MasteryStatus.UNSEEN


def test_part_of_speech_label_includes_implied_roles() -> None:
    word = build_word(
        headword="vivo",
        meaning="活的",
        part_of_speech="adjective",
        conjugation=Conjugation(yo="vivo"),
        gender_number_forms=GenderNumberForms("vivo", "viva", "vivos", "vivas"),
        created_at=NOW,
    )
    assert part_of_speech_label(word) == "adjective/verb"


def test_word_dict_uses_camel_case_keys() -> None:
    word = build_word(headword="hablar", meaning="说", conjugation=HABLAR, created_at=NOW)
    data = word_to_dict(word)
    assert data["conjugation"]["elElla"] == "habla"
    assert data["conjugation"]["ellosEllas"] == "hablan"
    assert data["lastReviewedAt"] is None
    assert data["createdAt"] == NOW.isoformat()
    assert word_from_dict(data) == word


def test_word_from_dict_accepts_legacy_keys() -> None:
    created = int(NOW.timestamp())
    word = word_from_dict({
        "id": "legacy-1",
        "spanish": "casa",
        "chinese": "房子",
        "meaningLanguage": "中文",
        "nounPlural": "casas",
        "memoryTips": "big house",
        "createdAt": created,
        "reviewStage": 2,
    })
    assert word.headword == "casa"
    assert word.meaning == "房子"
    assert word.meaning_language is MeaningLanguage.CHINESE
    assert word.plural_form == "casas"
    assert word.memory_tip == "Tips: big house"
    assert word.last_reviewed_at == NOW
    assert word.next_review_date == NOW + datetime.timedelta(days=7)


def test_word_from_dict_requires_created_at() -> None:
    with pytest.raises(ValueError):
        word_from_dict({"headword": "casa", "meaning": "房子"})
    with pytest.raises(ValueError):
        word_from_dict({"meaning": "房子", "createdAt": NOW.isoformat()})
