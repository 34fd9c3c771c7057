"""Canonical receipt encoding and hex/timestamp normalization.

The receipt is the exact byte string the enclave signed: an ABI tuple of
five strings (model, prompt, prior context, response, context). The
verifier contract re-encodes the same tuple, so every byte here must match
what the enclave produced at signing time.
"""

from __future__ import annotations

import json
import string
from typing import Any

from eth_abi import encode as abi_encode
from eth_utils import keccak

RECEIPT_TYPES = ("string", "string", "string", "string", "string")
EMPTY_CONTEXT = "[]"
MAX_UINT64 = (1 << 64) - 1

_EMPTY_CONTEXT_MARKERS = frozenset({"", "undefined", "null"})
_HEX_DIGITS = frozenset(string.hexdigits)


def normalize_text(text: str) -> str:
    """Normalize line endings the way the enclave does before signing."""
    if not isinstance(text, str):
        raise TypeError(f"Expected str, got {type(text).__name__}")
    return text.replace("\r\n", "\n")


def canonical_context(value: Any) -> str:
    """Return the canonical string form of a context field.

    Absent or empty values become the literal ``"[]"``. Lists and dicts are
    serialized as compact JSON with sorted keys; list order is kept since
    token sequences are ordered. Strings are passed through unchanged.
    """
    if value is None:
        return EMPTY_CONTEXT
    if isinstance(value, str):
        return EMPTY_CONTEXT if value.strip() in _EMPTY_CONTEXT_MARKERS else value
    if isinstance(value, (dict, list, tuple)):
        if not value:
            return EMPTY_CONTEXT
        try:
            return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Context is not JSON-serializable: {e}") from e
    raise ValueError(f"Unsupported context type: {type(value).__name__}")


def encode_receipt(
    model: str,
    prompt: str,
    response: str,
    context: Any = None,
    prior_context: Any = None,
) -> bytes:
    """ABI-encode the signed receipt tuple.

    Args:
        model: Model identifier the enclave ran
        prompt: Prompt text, line endings normalized here
        response: Response text, line endings normalized here
        context: Context echoed by the backend (any supported shape)
        prior_context: Prior conversation context, ``"[]"`` when absent

    Returns:
        ABI encoding of ``(model, prompt, prior_context, response, context)``
    """
    if not isinstance(model, str) or not model:
        raise ValueError("Model identifier is required")
    fields = [
        model,
        normalize_text(prompt),
        canonical_context(prior_context),
        normalize_text(response),
        canonical_context(context),
    ]
    return abi_encode(list(RECEIPT_TYPES), fields)


def encode_receipt_hex(
    model: str,
    prompt: str,
    response: str,
    context: Any = None,
    prior_context: Any = None,
) -> str:
    """Hex form of :func:`encode_receipt`, as passed to the verifier contract."""
    return normalize_hex(encode_receipt(model, prompt, response, context, prior_context))


def receipt_digest(receipt: bytes) -> str:
    """Keccak-256 digest of an encoded receipt."""
    return "0x" + keccak(receipt).hex()


def normalize_hex(value: str | bytes | bytearray | int) -> str:
    """Normalize a hex value to lowercase, ``0x``-prefixed, even length.

    Accepts hex strings with or without prefix, raw bytes and non-negative
    integers. Applying it twice gives the same result as applying it once.
    """
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, bool):
        raise TypeError("Boolean is not a hex value")
    if isinstance(value, int):
        if value < 0:
            raise ValueError("Hex value must be non-negative")
        digits = format(value, "x")
    elif isinstance(value, str):
        digits = value.strip()
        if digits[:2] in ("0x", "0X"):
            digits = digits[2:]
        digits = digits.lower()
    else:
        raise TypeError(f"Cannot convert {type(value).__name__} to hex")

    if not all(c in _HEX_DIGITS for c in digits):
        raise ValueError(f"Invalid hex string: {value!r}")
    if len(digits) % 2:
        digits = "0" + digits
    return "0x" + digits


def hex_to_bytes(value: str | bytes | bytearray | int) -> bytes:
    """Decode any value accepted by :func:`normalize_hex` into bytes."""
    return bytes.fromhex(normalize_hex(value)[2:])


def parse_timestamp(value: Any) -> int:
    """Parse a signing timestamp into an unsigned 64-bit integer.

    Accepts integers, decimal strings and ``0x`` hex strings.
    """
    if isinstance(value, bool):
        raise ValueError("Timestamp must be an integer")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            parsed = int(text, 16) if text[:2] in ("0x", "0X") else int(text, 10)
        except ValueError:
            raise ValueError(f"Invalid timestamp: {value!r}")
    else:
        raise ValueError(f"Invalid timestamp type: {type(value).__name__}")

    if not 0 <= parsed <= MAX_UINT64:
        raise ValueError(f"Timestamp out of uint64 range: {parsed}")
    return parsed
