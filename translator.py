"""Text translation using DashScope qwen-mt models."""

from __future__ import annotations

import logging
import os
from http import HTTPStatus
from typing import Any

from errors import TranslationFailure
from models import Language

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

logger = logging.getLogger(__name__)

# qwen-mt language names
_MT_LANGUAGE_NAMES = {
    Language.JAPANESE: "Japanese",
    Language.TRADITIONAL_CHINESE: "Traditional Chinese",
}


class DashscopeTranslator:
    def __init__(
        self,
        api_key: str,
        model: str = "qwen-mt-turbo",
        request_timeout_s: float = 15.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._request_timeout_s = request_timeout_s

    def translate(self, text: str, source_language: Language) -> str:
        """Translate ``text`` into the counterpart of ``source_language``.

        Every failure, whether the SDK is missing, the request raises, or the
        service answers with a non-OK status, surfaces as TranslationFailure.
        """
        if dashscope is None:
            raise TranslationFailure("dashscope is not installed")
        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        target_language = source_language.counterpart
        try:
            response = dashscope.Generation.call(
                api_key=api_key,
                model=self._model,
                messages=[{"role": "user", "content": text}],
                result_format="message",
                translation_options={
                    "source_lang": _MT_LANGUAGE_NAMES[source_language],
                    "target_lang": _MT_LANGUAGE_NAMES[target_language],
                },
                timeout=self._request_timeout_s,
            )
        except Exception as exc:
            logger.warning("Translation request failed: %s", exc)
            raise TranslationFailure(str(exc)) from exc

        if getattr(response, "status_code", None) != HTTPStatus.OK:
            code = getattr(response, "code", "")
            message = getattr(response, "message", "")
            logger.warning("Translation rejected: %s %s", code, message)
            raise TranslationFailure(f"{code}: {message}".strip(": "))

        translated = self._extract_text(response)
        if not translated:
            raise TranslationFailure("empty translation")
        return translated

    def _extract_text(self, response: Any) -> str:
        try:
            content = response.output.choices[0].message.content
        except (AttributeError, IndexError, KeyError, TypeError):
            return ""
        return str(content or "").strip()
