import datetime

import pytest

from llm_learn_spanish import scheduler
from llm_learn_spanish.words import MasteryStatus, WordRecord, build_word, mastery_status

NOW = datetime.datetime(2026, 1, 5, 12, 0, tzinfo=datetime.UTC)
DAY = datetime.timedelta(days=1)


def make_word(headword: str, stage: int = 0, last_reviewed: datetime.datetime = None,
              next_review: datetime.datetime = None, created: datetime.datetime = None) -> WordRecord:
    return build_word(
        headword=headword,
        meaning=f"meaning of {headword}",
        created_at=created or NOW - 30 * DAY,
        review_stage=stage,
        last_reviewed_at=last_reviewed,
        next_review_date=next_review,
    )


@pytest.mark.parametrize("stage", [-3, -1, 0, 1, 2, 3, 4, 10])
def test_next_due_date_uses_clamped_interval(stage: int) -> None:
    clamped = scheduler.clamp_stage(stage)
    assert scheduler.clamp_stage(clamped) == clamped
    assert 0 <= clamped <= scheduler.MAX_STAGE
    assert scheduler.next_due_date(NOW, stage) == NOW + scheduler.REVIEW_INTERVALS[clamped]


def test_interval_table() -> None:
    assert [i.days for i in scheduler.REVIEW_INTERVALS] == [1, 3, 7, 30]


@pytest.mark.parametrize("stage", [0, 1, 2, 3])
@pytest.mark.parametrize("errors", [0, 1, 2, 3, 4, 7])
def test_session_result_moves_stage_by_at_most_one(stage: int, errors: int) -> None:
    word = make_word("palabra", stage=stage, last_reviewed=NOW - 10 * DAY)
    updated = scheduler.apply_session_result(word, errors, NOW)

    if errors == 0:
        assert updated.review_stage == min(stage + 1, scheduler.MAX_STAGE)
        assert updated.review_stage >= stage
    elif errors >= 3:
        assert updated.review_stage == max(stage - 1, 0)
        assert updated.review_stage <= stage
    else:
        assert updated.review_stage == stage
    assert updated.last_reviewed_at == NOW
    assert updated.next_review_date == scheduler.next_due_date(NOW, updated.review_stage)


def test_first_perfect_session_on_new_word() -> None:
    word = build_word(headword="gato", meaning="猫", created_at=NOW)
    assert mastery_status(word) is MasteryStatus.UNSEEN

    updated = scheduler.apply_session_result(word, 0, NOW)
    assert updated.review_stage == 1
    assert mastery_status(updated) is MasteryStatus.FUZZY
    assert updated.next_review_date == NOW + 3 * DAY


def test_familiar_word_with_three_errors_drops_one_stage() -> None:
    word = make_word("perro", stage=2, last_reviewed=NOW - 7 * DAY)
    updated = scheduler.apply_session_result(word, 3, NOW)
    assert updated.review_stage == 1
    assert updated.next_review_date == NOW + 3 * DAY


def test_session_result_keeps_descriptive_fields() -> None:
    word = build_word(headword="casa", meaning="房子", plural_form="casas", memory_tip="big", created_at=NOW)
    updated = scheduler.apply_session_result(word, 1, NOW)
    assert (updated.id, updated.headword, updated.plural_form, updated.memory_tip) == \
        (word.id, word.headword, word.plural_form, word.memory_tip)


def test_advance_and_reset_review() -> None:
    word = make_word("luz", stage=3, last_reviewed=NOW - 40 * DAY)
    assert scheduler.advance_review(word, NOW).review_stage == 3

    reset = scheduler.reset_review(word, NOW)
    assert reset.review_stage == 0
    assert reset.next_review_date == NOW + DAY
    assert reset.last_reviewed_at == NOW


def test_normalize_review_date() -> None:
    word = make_word("sol", stage=1, last_reviewed=NOW, next_review=NOW + 100 * DAY)
    fixed = scheduler.normalize_review_date(word)
    assert fixed.next_review_date == NOW + 3 * DAY
    assert scheduler.normalize_review_date(fixed) is fixed


def test_due_words_sorted_and_filtered() -> None:
    later = make_word("b", stage=1, last_reviewed=NOW - 5 * DAY, next_review=NOW - datetime.timedelta(hours=1))
    earlier = make_word("a", stage=1, last_reviewed=NOW - 5 * DAY, next_review=NOW - 2 * datetime.timedelta(hours=1))
    not_due = make_word("c", stage=1, last_reviewed=NOW, next_review=NOW + DAY)
    unseen = make_word("d", next_review=NOW - 10 * DAY)

    due = scheduler.due_words([later, not_due, unseen, earlier], NOW)
    assert [w.headword for w in due] == ["a", "b"]
    assert all(w.last_reviewed_at is not None and w.next_review_date <= NOW for w in due)


def test_due_words_most_overdue_first() -> None:
    t = NOW - 2 * DAY
    first = make_word("first", stage=1, last_reviewed=t - 3 * DAY, next_review=t)
    second = make_word("second", stage=1, last_reviewed=t - 3 * DAY, next_review=t + datetime.timedelta(hours=1))
    assert scheduler.due_words([second, first], NOW) == [first, second]


def test_due_date_equal_to_reference_is_due() -> None:
    word = make_word("hoy", stage=0, last_reviewed=NOW - DAY, next_review=NOW)
    assert scheduler.due_words([word], NOW) == [word]


def test_due_words_keeps_input_order_for_equal_dates() -> None:
    t = NOW - DAY
    uno = make_word("uno", stage=1, last_reviewed=t - 3 * DAY, next_review=t)
    dos = make_word("dos", stage=1, last_reviewed=t - 3 * DAY, next_review=t)
    assert scheduler.due_words([uno, dos], NOW) == [uno, dos]
    assert scheduler.due_words([dos, uno], NOW) == [dos, uno]


def test_session_words_due_then_oldest_unseen() -> None:
    due_a = make_word("due-a", stage=1, last_reviewed=NOW - 9 * DAY, next_review=NOW - 2 * DAY)
    due_b = make_word("due-b", stage=1, last_reviewed=NOW - 9 * DAY, next_review=NOW - DAY)
    waiting = make_word("waiting", stage=2, last_reviewed=NOW, next_review=NOW + 7 * DAY)
    old_new = make_word("old-new", created=NOW - 20 * DAY)
    new_new = make_word("new-new", created=NOW - 2 * DAY)
    words = [new_new, waiting, due_b, old_new, due_a]

    picked = scheduler.session_words(words, 3, NOW)
    assert [w.headword for w in picked] == ["due-a", "due-b", "old-new"]

    everything = scheduler.session_words(words, 10, NOW)
    assert [w.headword for w in everything] == ["due-a", "due-b", "old-new", "new-new"]
    assert len({w.id for w in everything}) == len(everything)


def test_session_words_truncates_due_and_raises_count() -> None:
    due = [
        make_word(f"due-{i}", stage=1, last_reviewed=NOW - 9 * DAY, next_review=NOW - i * DAY)
        for i in range(1, 5)
    ]
    unseen = make_word("unseen")
    assert [w.headword for w in scheduler.session_words(due + [unseen], 2, NOW)] == ["due-4", "due-3"]
    assert len(scheduler.session_words(due, 0, NOW)) == 1
    assert scheduler.session_words([], 5, NOW) == []
