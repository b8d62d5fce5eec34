from abc import ABC, abstractmethod
from typing import Any, Optional


class UpstreamError(RuntimeError):
    """The model API call failed, timed out, or returned nothing usable."""


class ChatModel(ABC):
    """
    Chat-completion style multimodal model.
    One user message: an image reference plus a text prompt; returns generated text.
    """

    @abstractmethod
    def complete(
        self,
        model: str,
        image_url: str,
        prompt: str,
        extra_body: Optional[dict[str, Any]] = None,
    ) -> str:
        pass


class RequestRejected(Exception):
    """A request failed validation before any recognition started."""

    def __init__(self, code: str, message: str, status: int = 400):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status
