import random
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .words import WordRecord, normalize_answer, trimmed

TOTAL_ROUNDS = 3
CHOICE_COUNT = 4


class StudyRound(IntEnum):
    MEANING_RECOGNITION = 0
    PRODUCTION_RECOGNITION = 1
    DICTATION = 2

    @property
    def is_multiple_choice(self) -> bool:
        return self is not StudyRound.DICTATION


@dataclass
class Question:
    round: StudyRound
    title: str
    prompt: str
    correct_answer: str
    choices: List[str] = field(default_factory=list)
    subject: Optional[str] = None


def verb_options(word: WordRecord) -> List[Tuple[str, str]]:
    """Non-empty (person, form) pairs from the word's conjugation."""
    if word.conjugation is None:
        return []
    return [(person, trimmed(form)) for person, form in word.conjugation.slots() if trimmed(form)]


def make_dictation(word: WordRecord, rng: Optional[random.Random] = None) -> Tuple[Optional[str], str]:
    """Return ``(subject, answer)`` for the dictation round.

    Verbs are drilled on one conjugated form picked at random; everything
    else (and verbs without any filled form) on the headword itself.
    """
    rng = rng or random.Random()
    if not word.is_verb:
        return None, word.headword
    options = verb_options(word)
    if not options:
        return None, word.headword
    return rng.choice(options)


def build_choices(correct: str, pool: Sequence[str], rng: Optional[random.Random] = None) -> List[str]:
    """Correct answer plus up to three distinct distractors from ``pool``, shuffled."""
    rng = rng or random.Random()
    stripped_correct = trimmed(correct)
    candidates = [trimmed(p) for p in pool]
    # dict.fromkeys keeps first-seen order so a seeded rng is reproducible
    unique_pool = [c for c in dict.fromkeys(candidates) if c and c != stripped_correct and c != correct]

    needed = max(CHOICE_COUNT - 1, 0)
    distractors = rng.sample(unique_pool, min(needed, len(unique_pool)))
    choices = distractors + [correct]
    rng.shuffle(choices)
    return choices


def make_question(
    word: WordRecord,
    study_round: StudyRound,
    pool: Sequence[WordRecord],
    rng: Optional[random.Random] = None,
) -> Question:
    """Build the question for one round of a word.

    ``pool`` is the set of records distractors are drawn from; it may
    include ``word`` itself, whose own text is filtered out.
    """
    rng = rng or random.Random()
    if study_round is StudyRound.MEANING_RECOGNITION:
        return Question(
            round=study_round,
            title=f"Choose the correct {word.meaning_language.display_name} meaning",
            prompt=word.headword,
            correct_answer=word.meaning,
            choices=build_choices(word.meaning, [w.meaning for w in pool], rng),
        )
    if study_round is StudyRound.PRODUCTION_RECOGNITION:
        return Question(
            round=study_round,
            title="Choose the correct Spanish word",
            prompt=word.meaning,
            correct_answer=word.headword,
            choices=build_choices(word.headword, [w.headword for w in pool], rng),
        )

    subject, answer = make_dictation(word, rng)
    return Question(
        round=study_round,
        title="Type the Spanish word" if subject is None else "Type the conjugated form",
        prompt=word.meaning,
        correct_answer=answer,
        subject=subject,
    )


def is_correct_choice(question: Question, choice: str) -> bool:
    # Multiple choice is strict: the chosen text must be the answer itself
    return choice == question.correct_answer


def is_correct_dictation(question: Question, text: str) -> bool:
    return normalize_answer(text) == normalize_answer(question.correct_answer)


def check_answer(question: Question, answer: str) -> bool:
    if question.round.is_multiple_choice:
        return is_correct_choice(question, answer)
    return is_correct_dictation(question, answer)


def question_to_dict(question: Question, reveal: bool = False) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "round": int(question.round),
        "round_name": question.round.name.lower(),
        "title": question.title,
        "prompt": question.prompt,
        "choices": list(question.choices),
        "subject": question.subject,
        "multiple_choice": question.round.is_multiple_choice,
    }
    if reveal:
        data["correct_answer"] = question.correct_answer
    return data
