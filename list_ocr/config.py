"""
Service configuration, read from a JSON document before each request.

Anything missing or unreadable falls back to the built-in defaults below.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(os.getenv("LIST_OCR_CONFIG", Path(__file__).resolve().parent.parent / "config.json"))

MIN_CONCURRENCY = 1
MAX_CONCURRENCY = 10

DEFAULT_OCR_INSTRUCTION = (
    "Read the handwritten text in this image. It is a shopping or inventory list.\n\n"
    "Requirements:\n"
    "1. Recognize every handwritten entry\n"
    "2. Organize each entry as [item name, quantity, unit, note]\n"
    "3. The unit is the measure word, e.g. piece, bottle, bag, pack, kg, g, box\n"
    "4. Use an empty string for a missing quantity, unit or note\n"
    '5. Return a JSON array: [["item", "quantity", "unit", "note"], ...]\n\n'
    "Return only the JSON array, with no other explanation."
)

DEFAULT_DECISION_INSTRUCTION = (
    "Below are several OCR results for the same image. Using the original image "
    "and these results, give the most accurate final result.\n\n"
    "Requirements:\n"
    "1. Compare all results and choose the most accurate content\n"
    '2. Return a JSON array: [["item", "quantity", "unit", "note"], ...]\n'
    "3. The unit is the measure word, e.g. piece, bottle, bag, pack, kg, g, box\n"
    "4. Return only the JSON array, with no other explanation"
)


@dataclass
class OCRSettings:
    concurrency: int = 5
    ocr_model: str = "qwen-vl-max-latest"
    decision_model: str = "qwen-max-latest"
    enable_thinking: bool = False
    timeout_ms: float = 30000.0

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000.0


@dataclass
class PromptSettings:
    ocr_instruction: str = DEFAULT_OCR_INSTRUCTION
    decision_instruction: str = DEFAULT_DECISION_INSTRUCTION


@dataclass
class UploadSettings:
    max_size_mb: float = 10.0
    allowed_formats: list[str] = field(
        default_factory=lambda: ["image/png", "image/jpeg", "image/jpg", "image/webp"]
    )


@dataclass
class Settings:
    ocr: OCRSettings = field(default_factory=OCRSettings)
    prompt: PromptSettings = field(default_factory=PromptSettings)
    upload: UploadSettings = field(default_factory=UploadSettings)


# JSON key -> dataclass attribute
_OCR_KEYS = {
    "concurrency": "concurrency",
    "ocrModel": "ocr_model",
    "decisionModel": "decision_model",
    "enableThinking": "enable_thinking",
    "timeout": "timeout_ms",
}
_PROMPT_KEYS = {
    "ocrInstruction": "ocr_instruction",
    "decisionInstruction": "decision_instruction",
}
_UPLOAD_KEYS = {
    "maxSizeMB": "max_size_mb",
    "allowedFormats": "allowed_formats",
}


def _same_kind(default: Any, value: Any) -> bool:
    if isinstance(default, bool) or isinstance(value, bool):
        return isinstance(default, bool) and isinstance(value, bool)
    if isinstance(default, int):
        return isinstance(value, int)
    if isinstance(default, float):
        return isinstance(value, (int, float))
    if isinstance(default, list):
        return isinstance(value, list) and all(isinstance(v, str) for v in value)
    return isinstance(value, type(default))


def _section(cls, raw: Any, keys: dict[str, str]):
    if not isinstance(raw, dict):
        return cls()
    defaults = cls()
    kwargs = {}
    for key, attr in keys.items():
        value = raw.get(key)
        if value is None:
            continue
        if not _same_kind(getattr(defaults, attr), value):
            logger.warning("Ignoring config %s=%r, using default %r", key, value, getattr(defaults, attr))
            continue
        kwargs[attr] = value
    return cls(**kwargs)


def load_settings(path: Path | str | None = None) -> Settings:
    path = Path(path) if path is not None else CONFIG_PATH
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Failed to load config %s, using defaults: %s", path, e)
        return Settings()

    if not isinstance(raw, dict):
        logger.warning("Config %s is not a JSON object, using defaults", path)
        return Settings()

    return Settings(
        ocr=_section(OCRSettings, raw.get("ocr"), _OCR_KEYS),
        prompt=_section(PromptSettings, raw.get("prompt"), _PROMPT_KEYS),
        upload=_section(UploadSettings, raw.get("upload"), _UPLOAD_KEYS),
    )
