"""Enclave attestation retrieval and verification.

The enclave serves a raw attestation document; an independent verifier
service checks it and reports the enclave's secp256k1 public key, which is
later used to check signed inference responses.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from jobproof.sdk.exceptions import ParseFailure
from jobproof.sdk.models import AttestationDocument, ParseWarning, RunContext, VerificationVerdict
from jobproof.sdk.receipt import normalize_hex
from jobproof.sdk.transport import endpoint_url, send

logger = logging.getLogger(__name__)

ATTESTATION_PORT = 1301
VERIFICATION_PORT = 1400
PUBLIC_KEY_FIELD = "secp256k1_public"
OCTET_STREAM = "application/octet-stream"


class AttestationFetcher:
    """Retrieves raw attestation documents from an enclave host."""

    def __init__(self, http_client: httpx.Client, port: int = ATTESTATION_PORT):
        if not http_client:
            raise ValueError("HTTP client is required")
        self.http_client = http_client
        self.port = port

    def fetch(self, host: str) -> AttestationDocument:
        """Fetch the raw attestation document. The bytes are not inspected."""
        url = endpoint_url(host, self.port, "/attestation/raw")
        logger.info("Fetching attestation from %s", url)
        response = send(self.http_client, "GET", url, "Attestation request", headers={"Accept": OCTET_STREAM})
        document = AttestationDocument(raw=response.content, source_host=host)
        logger.info("Received attestation data: %d bytes", document.size)
        return document


class AttestationVerifier:
    """Submits attestation documents to an independent verifier service."""

    def __init__(self, http_client: httpx.Client, port: int = VERIFICATION_PORT):
        if not http_client:
            raise ValueError("HTTP client is required")
        self.http_client = http_client
        self.port = port

    def verify(self, document: AttestationDocument, verifier_host: str) -> VerificationVerdict:
        """Verify a document and extract the enclave public key.

        A verifier response without a usable key still counts as a
        successful call; the problem is recorded as a ``ParseWarning``.
        """
        if not document.raw:
            raise ValueError("Attestation document is empty")

        url = endpoint_url(verifier_host, self.port, "/verify/raw")
        logger.info("Sending %d attestation bytes to %s", document.size, url)
        response = send(
            self.http_client, "POST", url, "Verification request",
            content=document.raw, headers={"Content-Type": OCTET_STREAM},
        )

        verdict = VerificationVerdict(
            success=True,
            verification_result=response.text,
            response_headers=dict(response.headers.items()),
            attestation_ip=document.source_host,
            verification_ip=verifier_host,
            attestation_size=document.size,
        )
        try:
            verdict.enclave_public_key = normalize_hex(extract_enclave_public_key(response.text))
        except (ParseFailure, ValueError) as e:
            logger.warning("No enclave public key in verification result: %s", e)
            verdict.warnings.append(ParseWarning(message=str(e)))
        return verdict


def attest_enclave(fetcher: AttestationFetcher, verifier: AttestationVerifier, context: RunContext) -> VerificationVerdict:
    """Fetch a fresh attestation for the run's enclave and verify it."""
    document = fetcher.fetch(context.enclave_host)
    return verifier.verify(document, context.verifier_host)


def extract_enclave_public_key(text: str) -> str:
    """Locate the ``secp256k1_public`` value in a verifier response.

    The response is free text that may embed one or more JSON objects; each
    embedded object is decoded and searched at any depth.

    Raises:
        ParseFailure: No embedded JSON object carries the field
    """
    decoder = json.JSONDecoder()
    index = text.find("{")
    while index != -1:
        try:
            obj, end = decoder.raw_decode(text, index)
        except json.JSONDecodeError:
            index = text.find("{", index + 1)
            continue
        key = _find_field(obj, PUBLIC_KEY_FIELD)
        if key:
            return key
        index = text.find("{", end)
    raise ParseFailure(f"Verification result has no {PUBLIC_KEY_FIELD} field")


def _find_field(obj: Any, field: str) -> str | None:
    if isinstance(obj, dict):
        value = obj.get(field)
        if isinstance(value, str) and value.strip():
            return value.strip()
        children = obj.values()
    elif isinstance(obj, list):
        children = obj
    else:
        return None
    for child in children:
        found = _find_field(child, field)
        if found:
            return found
    return None
