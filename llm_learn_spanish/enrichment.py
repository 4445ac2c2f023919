"""
Fill in analysis results and memory tips for stored words.

Service calls happen outside the store lock; only the results are written
back through ``StudyStore.apply_analysis`` / ``StudyStore.update_tips``, so
review scheduling fields are never touched. A bulk run stops at the first
failing word and keeps what was already applied.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from .config import DEBUG_MODE
from .qwen import QwenService, ServiceError
from .store import StudyStore
from .structured import resolve_part_of_speech
from .words import MeaningLanguage, WordRecord, trimmed

ProgressCallback = Callable[[int, int], None]


class EnrichmentMode(str, Enum):
    ANALYSIS = "analysis"
    TIPS = "tips"
    BOTH = "both"

    @property
    def includes_analysis(self) -> bool:
        return self in (EnrichmentMode.ANALYSIS, EnrichmentMode.BOTH)

    @property
    def includes_tips(self) -> bool:
        return self in (EnrichmentMode.TIPS, EnrichmentMode.BOTH)


@dataclass
class BulkUpdateResult:
    processed: int
    total: int
    failed_word_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def enrich_word(store: StudyStore, service: QwenService, word_id: str,
                mode: EnrichmentMode = EnrichmentMode.BOTH) -> Optional[WordRecord]:
    """Run analysis and/or tips for one word. Raises ``ServiceError`` on failure."""
    word = store.get(word_id)
    if word is None:
        return None
    if mode.includes_analysis:
        analysis = service.analyze(word.headword, word.meaning_language)
        word = store.apply_analysis(word_id, analysis) or word
    if mode.includes_tips:
        tips = service.generate_tips(word)
        word = store.update_tips(word_id, tips.tips) or word
    return word


def bulk_enrich(store: StudyStore,
                service: QwenService,
                mode: EnrichmentMode = EnrichmentMode.BOTH,
                ids: Optional[Iterable[str]] = None,
                on_progress: Optional[ProgressCallback] = None) -> BulkUpdateResult:
    """Enrich every word (or only ``ids``) in list order, one at a time."""
    if ids is None:
        targets = [w.id for w in store.words]
    else:
        wanted = set(ids)
        targets = [w.id for w in store.words if w.id in wanted]

    result = BulkUpdateResult(processed=0, total=len(targets))
    for word_id in targets:
        try:
            enrich_word(store, service, word_id, mode)
        except ServiceError as e:
            print(f"⚠️ Bulk update stopped at word {word_id}: {e}")
            result.failed_word_id = word_id
            result.error = str(e)
            return result
        result.processed += 1
        if on_progress is not None:
            on_progress(result.processed, result.total)

    if DEBUG_MODE:
        print(f"✅ Bulk update ({mode.value}) finished: {result.processed}/{result.total}")
    return result


def add_word_with_analysis(store: StudyStore,
                           service: QwenService,
                           headword: str,
                           meaning_language: Any = MeaningLanguage.CHINESE,
                           with_tips: bool = False) -> Optional[WordRecord]:
    """Analyze ``headword`` and store the analyzed lemma as a new word.

    Nothing is stored if the analysis fails. Returns None when the lemma
    duplicates an existing word.
    """
    analysis = service.analyze(headword, meaning_language)
    language = analysis.language.strip().lower()
    if language not in (MeaningLanguage.CHINESE.value, MeaningLanguage.ENGLISH.value):
        language = meaning_language
    word = store.add_word(
        headword=trimmed(analysis.lemma) or headword,
        meaning=analysis.meaning,
        part_of_speech=resolve_part_of_speech(analysis),
        meaning_language=language,
        conjugation=analysis.conjugation,
        plural_form=analysis.plural_form,
        gender_number_forms=analysis.gender_number_forms,
    )
    if word is None or not with_tips:
        return word
    tips = service.generate_tips(word)
    return store.update_tips(word.id, tips.tips) or word
