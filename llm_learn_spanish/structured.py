from dataclasses import dataclass
from typing import Any, Dict, Optional

from .words import (
    Conjugation,
    GenderNumberForms,
    PartOfSpeech,
    WordRecord,
    conjugation_from_dict,
    gender_forms_from_dict,
    trimmed,
)


@dataclass
class WordAnalysis:
    meaning: str
    language: str
    lemma: Optional[str] = None
    part_of_speech: Optional[str] = None
    is_verb: Optional[bool] = None
    conjugation: Optional[Conjugation] = None
    plural_form: Optional[str] = None
    gender_number_forms: Optional[GenderNumberForms] = None


@dataclass
class WordTips:
    tips: str


def analysis_from_dict(data: Dict[str, Any]) -> WordAnalysis:
    """Validate the analyzer JSON. Raises ``ValueError`` on missing or mistyped fields."""
    if not isinstance(data, dict):
        raise ValueError("analysis must be a JSON object")
    meaning = data.get("meaning")
    language = data.get("language")
    if not isinstance(meaning, str) or not isinstance(language, str):
        raise ValueError("analysis needs string 'meaning' and 'language' fields")
    is_verb = data.get("isVerb")
    if is_verb is not None and not isinstance(is_verb, bool):
        raise ValueError("'isVerb' must be a boolean")
    for key in ("conjugation", "adjectiveForms", "genderNumberForms"):
        if data.get(key) is not None and not isinstance(data[key], dict):
            raise ValueError(f"'{key}' must be an object or null")
    plural = data.get("nounPlural", data.get("pluralForm"))
    return WordAnalysis(
        meaning=meaning,
        language=language,
        lemma=data.get("lemma") if isinstance(data.get("lemma"), str) else None,
        part_of_speech=data.get("partOfSpeech") if isinstance(data.get("partOfSpeech"), str) else None,
        is_verb=is_verb,
        conjugation=conjugation_from_dict(data.get("conjugation")),
        plural_form=plural if isinstance(plural, str) else None,
        gender_number_forms=gender_forms_from_dict(data.get("adjectiveForms", data.get("genderNumberForms"))),
    )


def tips_from_dict(data: Dict[str, Any]) -> WordTips:
    if not isinstance(data, dict) or not isinstance(data.get("tips"), str):
        raise ValueError("tips response needs a string 'tips' field")
    return WordTips(tips=data["tips"])


def resolve_part_of_speech(analysis: WordAnalysis) -> PartOfSpeech:
    """Filled forms win over the declared part of speech."""
    if analysis.conjugation is not None:
        return PartOfSpeech.VERB
    if trimmed(analysis.plural_form):
        return PartOfSpeech.NOUN
    if analysis.gender_number_forms is not None:
        return PartOfSpeech.ADJECTIVE
    if analysis.part_of_speech:
        try:
            return PartOfSpeech(analysis.part_of_speech.strip().lower())
        except ValueError:
            pass
    if analysis.is_verb:
        return PartOfSpeech.VERB
    return PartOfSpeech.OTHER


ANALYSIS_SYSTEM_PROMPT = """
You are a Spanish vocabulary analyzer. Output JSON only, never any explanation or extra text.
The output must strictly follow this schema:
{
  "lemma": string,
  "partOfSpeech": "verb" | "noun" | "adjective" | "other",
  "isVerb": boolean,
  "meaning": string,
  "language": "zh" | "en",
  "conjugation": {
    "yo": string,
    "tu": string,
    "elElla": string,
    "nosotros": string,
    "vosotros": string,
    "ellosEllas": string
  } | null,
  "nounPlural": string | null,
  "adjectiveForms": {
    "masculineSingular": string,
    "feminineSingular": string,
    "masculinePlural": string,
    "femininePlural": string
  } | null
}

RULES:
- If the word has no verb usage, conjugation MUST be null.
- If the word has no noun usage, nounPlural MUST be null.
- If the word has no adjective usage, adjectiveForms MUST be null.
- If the input is a conjugated form, imperative, participle or gerund, reduce it to the infinitive (lemma) and give the meaning of the infinitive.
- If the input is a plural or derived noun form, reduce it to the singular (lemma) and put the plural in nounPlural.
- If the input is a feminine and/or plural adjective form, reduce it to the masculine singular (lemma) and fill adjectiveForms.
- If the word has several parts of speech (e.g. "vivo" is an adjective and a verb form), fill every matching field; partOfSpeech is the main one.
- Conjugation is the present indicative.
- Write the meaning in the requested language ("zh" = Simplified Chinese, "en" = English).
"""

ANALYSIS_USER_TEMPLATE = """Input word: {word}
Meaning language: {language}"""

TIPS_SYSTEM_PROMPT = """
You are a Spanish memory coach. Output JSON only, never any explanation or extra text.
The output must strictly follow this schema:
{
  "tips": string
}
"tips" MUST start with "Tips:", be written in {language_name}, and be 1-3 sentences long.
Use word roots, sound-alike associations, scenes, or hints for the inflected forms / conjugation.
If nothing specific applies, give a general memorization technique.
"""

TIPS_USER_TEMPLATE = """Word: {headword}
Meaning: {meaning}
Part of speech: {part_of_speech}
Is verb: {is_verb}
Conjugation: {conjugation}
Noun plural: {plural}
Adjective forms: {adjective_forms}
Output language: {language}"""


def build_analysis_prompt(word: str, language: str) -> tuple[str, str]:
    return ANALYSIS_SYSTEM_PROMPT, ANALYSIS_USER_TEMPLATE.format(word=word, language=language)


def build_tips_prompt(word: WordRecord) -> tuple[str, str]:
    language = word.meaning_language.value
    language_name = "Simplified Chinese" if language == "zh" else "English"
    if word.conjugation is not None:
        conjugation = ", ".join(f"{person}={form}" for person, form in word.conjugation.slots())
    else:
        conjugation = "none"
    if word.gender_number_forms is not None:
        forms = word.gender_number_forms
        adjective_forms = (
            f"masculino sg={forms.masculine_singular}, femenino sg={forms.feminine_singular}, "
            f"masculino pl={forms.masculine_plural}, femenino pl={forms.feminine_plural}"
        )
    else:
        adjective_forms = "none"
    system = TIPS_SYSTEM_PROMPT.replace("{language_name}", language_name)
    user = TIPS_USER_TEMPLATE.format(
        headword=word.headword,
        meaning=word.meaning,
        part_of_speech=word.part_of_speech.value,
        is_verb="yes" if word.is_verb else "no",
        conjugation=conjugation,
        plural=word.plural_form or "none",
        adjective_forms=adjective_forms,
        language=language,
    )
    return system, user
