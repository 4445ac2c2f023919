"""
Study session driver.

A session drills a fixed list of words through three rounds each
(meaning recognition, production recognition, dictation). Words are visited
round-robin: after each answered question the cursor moves to the next word
that still has rounds left, so the rounds of one word are spread across the
session. When a word finishes its third round, the number of mistakes made on
it is reported through ``on_word_complete`` so the scheduler can move it to
its next review stage.
"""
import datetime
import random
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Sequence

from .exercises import TOTAL_ROUNDS, Question, StudyRound, check_answer, make_question
from .words import WordRecord

if TYPE_CHECKING:
    from .store import StudyStore

WordCompleteCallback = Callable[[str, int], object]


class StudySession:
    def __init__(
        self,
        words: Sequence[WordRecord],
        word_pool: Optional[Callable[[], Sequence[WordRecord]]] = None,
        on_word_complete: Optional[WordCompleteCallback] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.words: List[WordRecord] = list(words)
        self.rng = rng or random.Random()
        self._word_pool = word_pool or (lambda: self.words)
        self._on_word_complete = on_word_complete
        self.rounds_completed: Dict[str, int] = {w.id: 0 for w in self.words}
        self.error_counts: Dict[str, int] = {w.id: 0 for w in self.words}
        self.results: Dict[str, int] = {}
        self.cursor = 0
        self.question: Optional[Question] = None
        self.last_answer: Optional[str] = None
        self.last_answer_correct: Optional[bool] = None
        self._prepare_question()

    # -- state --------------------------------------------------------------

    @property
    def total(self) -> int:
        return len(self.words)

    @property
    def current_word_index(self) -> Optional[int]:
        """Index of the next word with rounds left, searching from the cursor."""
        if not self.words:
            return None
        for offset in range(len(self.words)):
            index = (self.cursor + offset) % len(self.words)
            if self.rounds_completed[self.words[index].id] < TOTAL_ROUNDS:
                return index
        return None

    @property
    def current_word(self) -> Optional[WordRecord]:
        index = self.current_word_index
        return None if index is None else self.words[index]

    @property
    def is_complete(self) -> bool:
        return self.current_word_index is None

    @property
    def completed_count(self) -> int:
        return sum(1 for w in self.words if self.rounds_completed[w.id] >= TOTAL_ROUNDS)

    @property
    def awaiting_answer(self) -> bool:
        return self.question is not None and self.last_answer_correct is None

    # -- transitions --------------------------------------------------------

    def _prepare_question(self) -> None:
        self.last_answer = None
        self.last_answer_correct = None
        word = self.current_word
        if word is None:
            self.question = None
            return
        study_round = StudyRound(self.rounds_completed[word.id])
        self.question = make_question(word, study_round, self._word_pool(), self.rng)

    def submit(self, answer: str) -> bool:
        """Score ``answer`` against the current question; mistakes are counted."""
        if self.question is None:
            raise ValueError("Session is complete; there is no question to answer.")
        if self.last_answer_correct is not None:
            raise ValueError("This question has already been answered.")
        word = self.current_word
        assert word is not None

        correct = check_answer(self.question, answer)
        if not correct:
            self.error_counts[word.id] += 1
        self.last_answer = answer
        self.last_answer_correct = correct
        return correct

    def submit_choice(self, choice: str) -> bool:
        if self.question is not None and not self.question.round.is_multiple_choice:
            raise ValueError("The current round expects typed input, not a choice.")
        return self.submit(choice)

    def submit_dictation(self, text: str) -> bool:
        if self.question is not None and self.question.round.is_multiple_choice:
            raise ValueError("The current round expects one of the offered choices.")
        return self.submit(text)

    def advance(self) -> Optional[Question]:
        """Finish the current round and move on; returns the next question or None."""
        if self.question is None:
            raise ValueError("Session is complete.")
        if self.last_answer_correct is None:
            raise ValueError("Submit an answer before continuing.")
        index = self.current_word_index
        assert index is not None
        word = self.words[index]

        done = min(self.rounds_completed[word.id] + 1, TOTAL_ROUNDS)
        self.rounds_completed[word.id] = done
        if done >= TOTAL_ROUNDS:
            errors = self.error_counts[word.id]
            self.results[word.id] = errors
            if self._on_word_complete is not None:
                self._on_word_complete(word.id, errors)
            self.error_counts[word.id] = 0

        self.cursor = (index + 1) % len(self.words)
        self._prepare_question()
        return self.question


def build_session(
    store: "StudyStore",
    count: int,
    rng: Optional[random.Random] = None,
    shuffle: bool = True,
    reference: Optional[datetime.datetime] = None,
) -> StudySession:
    """Start a session over the store's next ``count`` words.

    Results are written back through ``store.apply_session_result``.
    """
    rng = rng or random.Random()
    words = store.session_words(count, reference)
    if shuffle and len(words) > 1:
        rng.shuffle(words)
    return StudySession(
        words,
        word_pool=lambda: store.words,
        on_word_complete=store.apply_session_result,
        rng=rng,
    )
