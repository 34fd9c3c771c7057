"""Test helper functions for faking the enclave, verifier and ledger.

Provides an in-process HTTP router built on ``httpx.MockTransport`` and an
in-memory verifier oracle so pipeline tests run without network access.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx

from jobproof.sdk.models import JobPosting, JobSeeker

ENCLAVE = "10.0.0.1"
VERIFIER = "10.0.0.2"
SIGNATURE = "0x" + "ab" * 65
ENCLAVE_KEY = "0x04" + "cd" * 64
TIMESTAMP = 1690000000

Handler = Callable[[httpx.Request], httpx.Response]


class FakeEnclave:
    """Routes requests by path and records every request seen."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.generate: list[Handler] = []
        self.attestation: Handler = lambda r: httpx.Response(200, content=b"\x84\xa1attestation-doc")
        self.verification: Handler = lambda r: verification_response()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/api/generate":
            if not self.generate:
                return httpx.Response(500)
            return self.generate.pop(0)(request)
        if path == "/attestation/raw":
            return self.attestation(request)
        if path == "/verify/raw":
            return self.verification(request)
        return httpx.Response(404)

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self))


class FakeOracle:
    """Verifier oracle answering a fixed value and recording calls."""

    def __init__(self, answer: bool = True, error: Exception | None = None) -> None:
        self.answer = answer
        self.error = error
        self.calls: list[tuple[bytes, int, bytes, bytes]] = []

    def verify_enclave_response(self, receipt: bytes, timestamp: int, signature: bytes, public_key: bytes) -> bool:
        self.calls.append((receipt, timestamp, signature, public_key))
        if self.error:
            raise self.error
        return self.answer


def generation(text: str, signed: bool = True, body: dict[str, Any] | None = None) -> Handler:
    """Handler for one /api/generate call."""
    headers = {"x-oyster-signature": SIGNATURE, "x-oyster-timestamp": str(TIMESTAMP)} if signed else {}
    payload = {"response": text, **(body or {})}
    return lambda r: httpx.Response(200, json=payload, headers=headers)


def verification_response(key: str | None = ENCLAVE_KEY, headers: dict[str, str] | None = None) -> httpx.Response:
    body: dict[str, Any] = {"pcr0": "00" * 48, "verified": True}
    if key is not None:
        body["secp256k1_public"] = key
    text = "Attestation verified: " + json.dumps(body)
    return httpx.Response(200, text=text, headers=headers or {})


def match_report(*entries: tuple[int, int]) -> str:
    """Block-formatted model output for (candidate_id, score) pairs."""
    blocks = [
        f"CANDIDATE_ID: {cid}\nSCORE: {score}\nREASONING: Good fit.\nDETAILED_EVALUATION: Skills align.\n---"
        for cid, score in entries
    ]
    return "\n".join(blocks)


def sample_jobs() -> list[JobPosting]:
    return [
        JobPosting(id=1, employer="0xemployer", title="Backend Engineer", description="APIs",
                   required_skills=["Python", "SQL"], location="Remote", salary=120000),
        JobPosting(id=2, employer="0xemployer", title="Frontend Engineer", description="UI",
                   required_skills=["React"], location="Berlin", salary=90000),
    ]


def sample_candidates() -> list[JobSeeker]:
    return [
        JobSeeker(id=10, user="0xa", name="Ada", skills=["Python", "SQL"], location="Remote", expected_salary=110000),
        JobSeeker(id=11, user="0xb", name="Grace", skills=["React", "TypeScript"], location="Berlin", expected_salary=95000),
        JobSeeker(id=12, user="0xc", name="Linus", skills=["C"], location="Helsinki", expected_salary=150000),
    ]
