from typing import Any, Optional

import requests

from .base import ChatModel, UpstreamError

API_BASE_URL = "https://dashscope.aliyuncs.com/compatible-mode/v1"


def _error_detail(response: requests.Response) -> str:
    try:
        err = response.json().get("error")
    except (ValueError, AttributeError):
        return ""
    if isinstance(err, dict):
        return str(err.get("message") or "").strip()
    return ""


class ChatCompletionClient(ChatModel):
    """OpenAI-compatible /chat/completions over plain requests. No retries."""

    def __init__(self, api_key: str, base_url: str = API_BASE_URL, timeout_s: float = 30.0):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s

    def complete(
        self,
        model: str,
        image_url: str,
        prompt: str,
        extra_body: Optional[dict[str, Any]] = None,
    ) -> str:
        body: dict[str, Any] = {
            "model": model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "image_url", "image_url": {"url": image_url}},
                        {"type": "text", "text": prompt},
                    ],
                }
            ],
        }
        body.update(extra_body or {})

        try:
            r = requests.post(
                f"{self.base_url}/chat/completions",
                json=body,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout_s,
            )
        except requests.Timeout as e:
            raise UpstreamError(f"Model API timed out after {self.timeout_s:g}s") from e
        except requests.RequestException as e:
            raise UpstreamError(f"Model API request failed: {e}") from e

        if not r.ok:
            detail = _error_detail(r)
            msg = f"Model API HTTP {r.status_code}"
            if detail:
                msg += f": {detail}"
            raise UpstreamError(msg)

        try:
            content = r.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise UpstreamError("Model API returned an invalid response payload") from e

        if not isinstance(content, str):
            raise UpstreamError("Model API returned no message content")
        return content
