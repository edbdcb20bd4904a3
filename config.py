"""Simple JSON-based config store."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

from errors import ConfigurationError
from models import Language, Mode

logger = logging.getLogger(__name__)

DEFAULT_HOTKEY = "Key.f9"
DEFAULT_ASR_MODEL = "paraformer-realtime-v2"
DEFAULT_TRANSLATION_MODEL = "qwen-mt-turbo"


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "bilingual_interpreter" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_api_key(self) -> str:
        data = self._read_all()
        return str(data.get("api_key", "")) or os.getenv("DASHSCOPE_API_KEY", "")

    def set_api_key(self, key: str) -> None:
        self._update(api_key=key)

    def require_api_key(self) -> str:
        key = self.get_api_key()
        if not key:
            raise ConfigurationError("set an API key or DASHSCOPE_API_KEY")
        return key

    def get_language(self) -> Language:
        value = self._read_all().get("language", Language.JAPANESE.value)
        try:
            return Language(value)
        except ValueError:
            logger.warning("Unknown language %r in config, using default", value)
            return Language.JAPANESE

    def set_language(self, language: Language) -> None:
        self._update(language=language.value)

    def get_mode(self) -> Mode:
        value = self._read_all().get("mode", Mode.TURN_TAKING.value)
        try:
            return Mode(value)
        except ValueError:
            logger.warning("Unknown mode %r in config, using default", value)
            return Mode.TURN_TAKING

    def set_mode(self, mode: Mode) -> None:
        self._update(mode=mode.value)

    def get_input_device(self) -> Optional[int]:
        value = self._read_all().get("input_device")
        return value if isinstance(value, int) else None

    def set_input_device(self, device: Optional[int]) -> None:
        self._update(input_device=device)

    def get_hotkey(self) -> str:
        return str(self._read_all().get("hotkey", DEFAULT_HOTKEY))

    def set_hotkey(self, hotkey: str) -> None:
        self._update(hotkey=hotkey)

    def get_asr_model(self) -> str:
        return str(self._read_all().get("asr_model", DEFAULT_ASR_MODEL))

    def get_translation_model(self) -> str:
        return str(self._read_all().get("translation_model", DEFAULT_TRANSLATION_MODEL))

    def _update(self, **values: object) -> None:
        data = self._read_all()
        data.update(values)
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            logger.warning("Ignoring unreadable config at %s", self._path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
