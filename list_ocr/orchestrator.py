"""
Multi-sample recognition pipeline.

N OCR samples of the same image run concurrently; the valid ones are either
passed through (one) or reconciled by a second model pass (two or more).
Progress is reported as a stream of events ending in exactly one error or result.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Iterator, Optional

from .base import ChatModel, RequestRejected, UpstreamError
from .config import MAX_CONCURRENCY, MIN_CONCURRENCY, Settings
from .consolidator import consolidate
from .image import normalize_image
from .parser import parse_table
from .progress import Event
from .recognizer import recognize
from .types import (
    ErrorEvent,
    ProgressUpdate,
    RecognitionAttempt,
    RecognitionRequest,
    ResultEvent,
    ResultMetadata,
    TableRow,
)

logger = logging.getLogger(__name__)


def prepare_request(
    body: Any,
    settings: Settings,
    api_key: Optional[str],
    received_at: Optional[float] = None,
) -> RecognitionRequest:
    """Validate an /api/ocr body. Raises RequestRejected."""
    body = body if isinstance(body, dict) else {}

    image = body.get("image")
    if not image:
        raise RequestRejected("NO_IMAGE", "Please provide image data")
    image = normalize_image(image, settings.upload.allowed_formats, settings.upload.max_size_mb)

    concurrency = body.get("concurrency")
    if concurrency is None:
        concurrency = settings.ocr.concurrency
    if (
        isinstance(concurrency, bool)
        or not isinstance(concurrency, int)
        or not MIN_CONCURRENCY <= concurrency <= MAX_CONCURRENCY
    ):
        raise RequestRejected(
            "INVALID_CONCURRENCY",
            f"Concurrency must be between {MIN_CONCURRENCY} and {MAX_CONCURRENCY}",
        )

    if not api_key:
        raise RequestRejected("NO_API_KEY", "API key is not configured", status=500)

    reasoning = body.get("enableThinking")
    if not isinstance(reasoning, bool):
        reasoning = settings.ocr.enable_thinking

    return RecognitionRequest(
        image=image,
        concurrency=concurrency,
        reasoning=reasoning,
        received_at=time.monotonic() if received_at is None else received_at,
    )


class Orchestrator:
    def __init__(self, client: ChatModel, settings: Settings):
        self.client = client
        self.settings = settings

    def run(self, request: RecognitionRequest) -> Iterator[Event]:
        """Yield progress events; the last one is always an ErrorEvent or ResultEvent."""
        try:
            yield from self._run(request)
        except Exception as e:
            logger.exception("OCR processing failed")
            yield ErrorEvent("INTERNAL_ERROR", str(e) or "Recognition service unavailable, please retry later")

    def _run(self, request: RecognitionRequest) -> Iterator[Event]:
        n = request.concurrency
        yield ProgressUpdate(5, "Preparing recognition...")
        logger.info("Starting %d concurrent OCR attempts", n)
        yield ProgressUpdate(10, f"Starting {n} concurrent recognitions...")

        attempts: list[RecognitionAttempt] = []
        failures: list[UpstreamError] = []
        completed = 0

        with ThreadPoolExecutor(max_workers=n) as pool:
            futures = {
                pool.submit(
                    recognize,
                    self.client,
                    request.image,
                    self.settings.prompt.ocr_instruction,
                    self.settings.ocr.ocr_model,
                    i,
                    request.reasoning,
                ): i
                for i in range(n)
            }
            for future in as_completed(futures):
                index = futures[future]
                try:
                    raw = future.result()
                except UpstreamError as e:
                    failures.append(e)
                else:
                    attempts.append(RecognitionAttempt(index, raw, parse_table(raw)))
                completed += 1
                yield ProgressUpdate(10 + (60 * completed) // n, f"Recognition progress: {completed}/{n}")

        yield ProgressUpdate(70, "All recognition requests complete")

        if len(failures) == n:
            raise failures[0]

        attempts.sort(key=lambda a: a.index)
        valid = [a.parsed for a in attempts if a.valid]
        logger.info("Valid OCR results: %d/%d (%d failed)", len(valid), n, len(failures))
        yield ProgressUpdate(75, f"Parsing complete, valid results: {len(valid)}/{n}")

        if not valid:
            yield ErrorEvent("NO_VALID_RESULTS", "No valid content recognized, please check the image clarity")
            return

        if len(valid) == 1:
            yield ProgressUpdate(90, "Preparing result...")
            final = valid[0]
        else:
            yield ProgressUpdate(80, "Consolidating recognition results...")
            final = consolidate(
                self.client,
                request.image,
                valid,
                self.settings.prompt.decision_instruction,
                self.settings.ocr.decision_model,
            )
            if final is None:
                yield ErrorEvent("CONSOLIDATION_FAILED", "Failed to consolidate recognition results")
                return
            yield ProgressUpdate(95, "Consolidation complete")

        elapsed = round(time.monotonic() - request.received_at, 2)
        logger.info("Processing finished in %.2fs", elapsed)
        yield ResultEvent(
            rows=tuple(TableRow.from_cells(cells) for cells in final),
            metadata=ResultMetadata(
                concurrency_used=n,
                valid_attempts=len(valid),
                processing_time_seconds=elapsed,
            ),
        )
