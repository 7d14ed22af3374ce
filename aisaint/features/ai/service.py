"""Text generation via Groq chat completions.

The prompt is the raw message content sent as a single user turn. Any
failure (no credential, transport/API error, empty output) surfaces as
UpstreamError. No retries.
"""

import logging
from typing import Any, Optional

import groq

from aisaint.core.config import GENERATION_MODEL
from aisaint.core.errors import UpstreamError
from aisaint.core.metrics import generation_requests_total
from aisaint.core.tracing import start_span

logger = logging.getLogger(__name__)

GENERATION_FAILED_MESSAGE = "Failed to generate AI response. Please try again later."


class ResponseGenerator:
    def __init__(self, api_key: Optional[str], *, model: str = GENERATION_MODEL, client: Any = None):
        self.model = model
        self._api_key = api_key
        self._client = client

    def _get_client(self):
        if self._client is None:
            if not self._api_key:
                logger.error("[ai] GROQ_API_KEY is not configured", extra={"error_code": "upstream_error"})
                raise UpstreamError(GENERATION_FAILED_MESSAGE)
            self._client = groq.AsyncGroq(api_key=self._api_key, max_retries=0)
        return self._client

    async def generate(self, prompt_text: str) -> str:
        with start_span("ai.generate", {"model": self.model, "prompt_length": len(prompt_text)}):
            try:
                client = self._get_client()
            except UpstreamError:
                generation_requests_total.inc(labels={"status": "no_credential"})
                raise

            try:
                completion = await client.chat.completions.create(
                    messages=[{"role": "user", "content": prompt_text}],
                    model=self.model,
                )
            except Exception as exc:
                generation_requests_total.inc(labels={"status": "error"})
                logger.error(
                    "[ai] generation call failed",
                    extra={"error_code": "upstream_error", "error": repr(exc)},
                )
                raise UpstreamError(GENERATION_FAILED_MESSAGE) from exc

            text = _extract_text(completion)
            if not text:
                generation_requests_total.inc(labels={"status": "malformed"})
                logger.error("[ai] generation returned no text", extra={"error_code": "upstream_error"})
                raise UpstreamError(GENERATION_FAILED_MESSAGE)

            generation_requests_total.inc(labels={"status": "ok"})
            logger.info("[ai] response generated", extra={"response_length": len(text)})
            return text


def _extract_text(completion: Any) -> Optional[str]:
    try:
        content = completion.choices[0].message.content
    except (AttributeError, IndexError, TypeError):
        return None
    if not isinstance(content, str) or not content.strip():
        return None
    return content
