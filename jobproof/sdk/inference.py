"""Signed inference client for enclave-hosted models.

Enclave-backed deployments attach a signature and timestamp to every
generation, either as ``x-oyster-*`` headers or inside the JSON body. Plain
backends return text only.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx

from jobproof.sdk.exceptions import MissingSignatureMaterial, ParseFailure
from jobproof.sdk.models import InferenceResult
from jobproof.sdk.receipt import normalize_hex, parse_timestamp
from jobproof.sdk.transport import endpoint_url, send

logger = logging.getLogger(__name__)

INFERENCE_PORT = 5000
SIGNATURE_HEADER = "x-oyster-signature"
TIMESTAMP_HEADER = "x-oyster-timestamp"
SIGNATURE_BODY_KEYS = ("oysterSignature", "signature")
TIMESTAMP_BODY_KEYS = ("oysterTimestamp", "timestamp")
TEXT_BODY_KEYS = ("response", "generated_text")

# Body keys that may carry the model context, highest precedence first.
DEFAULT_CONTEXT_KEYS = ("context", "tokens", "tokenized", "input_ids", "token_ids")


class SignedInferenceClient:
    """Calls the enclave's generate endpoint and extracts proof material."""

    def __init__(
        self,
        http_client: httpx.Client,
        port: int = INFERENCE_PORT,
        context_keys: Sequence[str] = DEFAULT_CONTEXT_KEYS,
    ):
        if not http_client:
            raise ValueError("HTTP client is required")
        if not context_keys:
            raise ValueError("At least one context key is required")
        self.http_client = http_client
        self.port = port
        self.context_keys = tuple(context_keys)

    def infer(self, host: str, prompt: str, model: str, require_proof: bool = False) -> InferenceResult:
        """Run one generation and return its text with optional signature and timestamp.

        Raises:
            MissingSignatureMaterial: ``require_proof`` is set and the backend
                returned no usable signature or timestamp
        """
        if not prompt or not model:
            raise ValueError("Prompt and model are required")

        url = endpoint_url(host, self.port, "/api/generate")
        logger.info("Requesting generation from %s (model=%s, prompt=%d chars)", url, model, len(prompt))
        response = send(
            self.http_client, "POST", url, "API request",
            json={"model": model, "prompt": prompt},
        )
        body = self._parse_body(response)

        signature = _first_present(response.headers.get(SIGNATURE_HEADER), *(body.get(k) for k in SIGNATURE_BODY_KEYS))
        timestamp = _first_present(response.headers.get(TIMESTAMP_HEADER), *(body.get(k) for k in TIMESTAMP_BODY_KEYS))
        context_key, context = self._extract_context(body)
        try:
            signature = normalize_hex(signature) if signature is not None else None
            timestamp = parse_timestamp(timestamp) if timestamp is not None else None
        except (TypeError, ValueError) as e:
            logger.warning("Discarding malformed signature material: %s", e)
            signature, timestamp = None, None

        result = InferenceResult(
            text=_extract_text(body),
            signature=signature,
            timestamp=timestamp,
            context=context,
            context_key=context_key,
        )
        if result.has_proof:
            logger.info("Generation signed by enclave at timestamp %d", result.timestamp)
        elif require_proof:
            raise MissingSignatureMaterial(f"Inference response from {host} carries no signature or timestamp")
        else:
            logger.info("Generation returned without signature material")
        return result

    def _parse_body(self, response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            raise ParseFailure(f"Inference response is not JSON: {e}") from e
        if not isinstance(body, dict):
            raise ParseFailure("Inference response must be a JSON object")
        return body

    def _extract_context(self, body: dict[str, Any]) -> tuple[str | None, Any]:
        for key in self.context_keys:
            if body.get(key) is not None:
                return key, body[key]
        return None, None


def _extract_text(body: dict[str, Any]) -> str:
    for key in TEXT_BODY_KEYS:
        value = body.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def _first_present(*values: Any) -> Any:
    """First value that is neither None nor an empty string."""
    for value in values:
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None
