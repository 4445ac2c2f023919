"""
Client for the word analysis and memory-tip services.

Both services are chat completions against Qwen through DashScope's
OpenAI-compatible endpoint, so the official ``openai`` SDK is used with a
custom ``base_url``. The model is asked for a bare JSON object; the first
``{`` to the last ``}`` of the reply is decoded into a typed result.

Every failure surfaces as a ``ServiceError`` subclass whose message can be
shown to the user as-is:

    MissingCredentialError - no API key configured
    TransportError         - HTTP error status or connection failure
    InvalidResponseError   - reply has no content or no JSON object
    ParseFailureError      - JSON does not decode or does not fit the schema
"""
import json
from typing import Any, Dict, List, Optional

import openai
from openai import OpenAI

from . import config
from .config import DEBUG_MODE
from .structured import (
    WordAnalysis,
    WordTips,
    analysis_from_dict,
    build_analysis_prompt,
    build_tips_prompt,
    tips_from_dict,
)
from .words import MeaningLanguage, WordRecord, coerce_meaning_language


class ServiceError(Exception):
    """Base class for analysis / tip service failures."""


class MissingCredentialError(ServiceError):
    def __init__(self) -> None:
        super().__init__("QWEN_API_KEY is not configured.")


class TransportError(ServiceError):
    def __init__(self, code: int, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"Request failed ({code}): {message}")


class InvalidResponseError(ServiceError):
    def __init__(self, detail: str = "The response could not be read.") -> None:
        super().__init__(detail)


class ParseFailureError(ServiceError):
    def __init__(self, detail: str = "Could not parse the result, please retry.") -> None:
        super().__init__(detail)


def extract_json_object(text: str) -> Optional[str]:
    """Slice from the first '{' to the last '}' (models like to wrap JSON in prose or fences)."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end < start:
        return None
    return text[start:end + 1]


class QwenService:
    """Word analysis and memory tips backed by a Qwen chat model."""

    def __init__(self,
                 api_key: Optional[str] = None,
                 model_name: Optional[str] = None,
                 base_url: Optional[str] = None,
                 client: Any = None) -> None:
        self.api_key = config.qwen_api_key() if api_key is None else api_key
        self.model_name = model_name or config.qwen_model()
        self.base_url = base_url or config.qwen_base_url()
        self._client = client

    def _get_client(self) -> Any:
        if not self.api_key:
            raise MissingCredentialError()
        if self._client is None:
            self._client = OpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    def _complete(self, system: str, user: str, temperature: float) -> str:
        client = self._get_client()
        messages: List[Dict[str, str]] = [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]

        if DEBUG_MODE:
            print(f"🤖 Qwen API Call Details:")
            print(f"   Model: {self.model_name}")
            print(f"   System prompt length: {len(system)} characters")
            print(f"   User prompt preview: {user[:200]}...")

        try:
            response = client.chat.completions.create(
                model=self.model_name,
                messages=messages,  # type: ignore
                temperature=temperature,
            )
        except openai.APIStatusError as e:
            body = getattr(e.response, "text", "") or e.message
            raise TransportError(e.status_code, body) from e
        except openai.APIConnectionError as e:
            raise TransportError(0, str(e)) from e

        choices = getattr(response, "choices", None)
        if not choices:
            raise InvalidResponseError()
        content = choices[0].message.content
        if not content:
            raise InvalidResponseError()

        if DEBUG_MODE:
            print(f"✅ Qwen API Response: {len(content)} characters")
        return content

    def _complete_json(self, system: str, user: str, temperature: float) -> Dict[str, Any]:
        content = self._complete(system, user, temperature)
        raw = extract_json_object(content)
        if raw is None:
            raise InvalidResponseError()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ParseFailureError() from e
        if not isinstance(data, dict):
            raise ParseFailureError()
        return data

    def analyze(self, word: str, target_language: Any = MeaningLanguage.CHINESE) -> WordAnalysis:
        """Lemma, part of speech, meaning and inflected forms for ``word``."""
        language = coerce_meaning_language(target_language)
        system, user = build_analysis_prompt(word, language.value)
        data = self._complete_json(system, user, config.ANALYSIS_TEMPERATURE)
        try:
            return analysis_from_dict(data)
        except ValueError as e:
            raise ParseFailureError() from e

    def generate_tips(self, word: WordRecord) -> WordTips:
        """One to three sentences of mnemonic help for ``word``."""
        system, user = build_tips_prompt(word)
        data = self._complete_json(system, user, config.TIPS_TEMPERATURE)
        try:
            return tips_from_dict(data)
        except ValueError as e:
            raise ParseFailureError() from e
