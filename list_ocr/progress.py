"""
NDJSON wire encoding for the progress stream.

One JSON object per line; the last line is always an error or a result.
"""

import json
from typing import Any, Iterable, Iterator, Union

from .types import ErrorEvent, ProgressUpdate, ResultEvent

NDJSON_MIMETYPE = "application/x-ndjson"

Event = Union[ProgressUpdate, ErrorEvent, ResultEvent]


def event_to_dict(event: Event) -> dict[str, Any]:
    if isinstance(event, ProgressUpdate):
        return {"type": "progress", "progress": event.percent, "message": event.message, "data": None}
    if isinstance(event, ErrorEvent):
        return {"type": "error", "error": {"code": event.code, "message": event.message}}
    if isinstance(event, ResultEvent):
        return {
            "type": "result",
            "success": True,
            "data": {
                "items": [row.as_list() for row in event.rows],
                "metadata": event.metadata.to_dict(),
            },
        }
    raise TypeError(f"Unsupported event: {event!r}")


def encode_event(event: Event) -> bytes:
    return (json.dumps(event_to_dict(event), ensure_ascii=False) + "\n").encode("utf-8")


def encode_stream(events: Iterable[Event]) -> Iterator[bytes]:
    for event in events:
        yield encode_event(event)


def error_body(code: str, message: str) -> dict[str, Any]:
    """Body for errors returned before the stream opens."""
    return {"success": False, "error": {"code": code, "message": message}}


def iter_messages(lines: Iterable[Union[str, bytes]]) -> Iterator[dict[str, Any]]:
    """Decode stream lines back into dicts, skipping blanks."""
    for line in lines:
        if isinstance(line, bytes):
            line = line.decode("utf-8")
        if line.strip():
            yield json.loads(line)
