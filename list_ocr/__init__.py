# list_ocr/__init__.py
import os

from .base import ChatModel, RequestRejected, UpstreamError
from .chat_client import API_BASE_URL, ChatCompletionClient
from .config import Settings, load_settings
from .orchestrator import Orchestrator, prepare_request


def get_api_key():
    return os.getenv("DASHSCOPE_API_KEY", "").strip() or None


def get_model_client(api_key: str, settings: Settings) -> ChatModel:
    base_url = os.getenv("LIST_OCR_API_BASE_URL", API_BASE_URL)
    return ChatCompletionClient(api_key, base_url=base_url, timeout_s=settings.ocr.timeout_s)


__all__ = [
    "ChatModel",
    "Orchestrator",
    "RequestRejected",
    "Settings",
    "UpstreamError",
    "get_api_key",
    "get_model_client",
    "load_settings",
    "prepare_request",
]
