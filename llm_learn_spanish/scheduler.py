import datetime
from typing import List, Sequence, Tuple

from .words import WordRecord

# Interval before the next review, indexed by review stage:
#   0 learning - 1 day
#   1 fuzzy    - 3 days
#   2 familiar - 7 days
#   3 mastered - 30 days
REVIEW_INTERVALS: Tuple[datetime.timedelta, ...] = (
    datetime.timedelta(days=1),
    datetime.timedelta(days=3),
    datetime.timedelta(days=7),
    datetime.timedelta(days=30),
)
MAX_STAGE = len(REVIEW_INTERVALS) - 1

# Errors in a session at or above this count drop the word one stage
DEMOTION_THRESHOLD = 3


def clamp_stage(stage: int) -> int:
    return min(max(stage, 0), MAX_STAGE)


def next_due_date(anchor: datetime.datetime, stage: int) -> datetime.datetime:
    return anchor + REVIEW_INTERVALS[clamp_stage(stage)]


def apply_session_result(word: WordRecord, error_count: int, now: datetime.datetime) -> WordRecord:
    """
    Fold the outcome of a three-round study session into the review state.

    Stage changes:
      0 errors   → promote one stage (capped at MAX_STAGE)
      1-2 errors → stage unchanged
      3+ errors  → demote one stage (never below 0)

    The review clock restarts at ``now`` in every case, including when the
    stage is unchanged.
    """
    stage = clamp_stage(word.review_stage)
    if error_count == 0:
        stage = min(stage + 1, MAX_STAGE)
    elif error_count >= DEMOTION_THRESHOLD:
        stage = max(stage - 1, 0)
    return word.replace(
        review_stage=stage,
        next_review_date=next_due_date(now, stage),
        last_reviewed_at=now,
    )


def advance_review(word: WordRecord, now: datetime.datetime) -> WordRecord:
    """Bump the word one stage without a study session."""
    stage = min(clamp_stage(word.review_stage) + 1, MAX_STAGE)
    return word.replace(
        review_stage=stage,
        next_review_date=next_due_date(now, stage),
        last_reviewed_at=now,
    )


def reset_review(word: WordRecord, now: datetime.datetime) -> WordRecord:
    """Send the word back to the first stage."""
    return word.replace(
        review_stage=0,
        next_review_date=next_due_date(now, 0),
        last_reviewed_at=now,
    )


def normalize_review_date(word: WordRecord) -> WordRecord:
    """Recompute the next review date from the anchor and the current table."""
    anchor = word.last_reviewed_at or word.created_at
    expected = next_due_date(anchor, word.review_stage)
    if word.next_review_date == expected:
        return word
    return word.replace(next_review_date=expected)


def due_words(words: Sequence[WordRecord], reference: datetime.datetime) -> List[WordRecord]:
    """Reviewed words whose next review is at or before ``reference``, earliest first."""
    due = [w for w in words if w.last_reviewed_at is not None and w.next_review_date <= reference]
    return sorted(due, key=lambda w: w.next_review_date)


def session_words(words: Sequence[WordRecord], count: int, reference: datetime.datetime) -> List[WordRecord]:
    """Pick the words for one study session.

    Due words come first (most overdue first). Any remaining slots are filled
    with never-reviewed words, oldest first. Nothing is padded: the result
    holds ``min(count, due + unseen)`` words.
    """
    count = max(count, 1)
    due = due_words(words, reference)
    if len(due) >= count:
        return due[:count]

    unseen = sorted(
        (w for w in words if w.last_reviewed_at is None),
        key=lambda w: w.created_at,
    )
    return due + unseen[:count - len(due)]
