import logging

from .base import ChatModel, UpstreamError

logger = logging.getLogger(__name__)


def recognize(
    client: ChatModel,
    image: str,
    prompt: str,
    model: str,
    attempt_index: int,
    reasoning: bool,
) -> str:
    """Run one OCR sample against the model and return its raw text."""
    logger.info("Starting OCR attempt %d", attempt_index + 1)
    try:
        content = client.complete(
            model,
            image,
            prompt,
            extra_body={"enable_thinking": bool(reasoning)},
        )
    except UpstreamError as e:
        logger.warning("OCR attempt %d failed: %s", attempt_index + 1, e)
        raise

    logger.info("OCR attempt %d result: %s", attempt_index + 1, content[:100])
    return content
