"""Pydantic models for the enclave trust pipeline.

Covers attestation documents and verdicts, signed inference results, the
canonical receipt tuple, signature material and the per-run verification
record, plus the marketplace records fed into a matching run.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from jobproof.sdk.receipt import (
    EMPTY_CONTEXT,
    canonical_context,
    encode_receipt,
    normalize_hex,
    normalize_text,
    parse_timestamp,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VerificationState(str, Enum):
    """States of a matching run's verification state machine."""
    INIT = "INIT"
    INFERRING = "INFERRING"
    HAVE_RECEIPT = "HAVE_RECEIPT"
    ATTESTING = "ATTESTING"
    VERIFYING = "VERIFYING"
    VERIFIED = "VERIFIED"
    VERIFICATION_FAILED = "VERIFICATION_FAILED"
    MATCHING_FAILED = "MATCHING_FAILED"


TERMINAL_STATES = frozenset({
    VerificationState.VERIFIED,
    VerificationState.VERIFICATION_FAILED,
    VerificationState.MATCHING_FAILED,
})


class RunContext(BaseModel):
    """Caller-owned addressing for one matching run."""

    model_config = ConfigDict(frozen=True)

    enclave_host: str = Field(..., description="Enclave host serving attestation and inference")
    verifier_host: str = Field(..., description="Independent attestation verification service host")
    model: str = Field(default="llama3.2", description="Model identifier sent to the enclave")


class ParseWarning(BaseModel):
    """Recoverable parsing problem recorded on a result instead of raised."""

    message: str = Field(..., description="What could not be parsed")
    source: str = Field(default="verification", description="Stage that produced the warning")


class AttestationDocument(BaseModel):
    """Opaque attestation bytes as served by the enclave host."""

    model_config = ConfigDict(frozen=True)

    raw: bytes = Field(..., description="Raw attestation document")
    source_host: str = Field(..., description="Enclave host the document came from")
    fetched_at: datetime = Field(default_factory=_utcnow)

    @property
    def size(self) -> int:
        return len(self.raw)


class VerificationVerdict(BaseModel):
    """Result of submitting an attestation document to the verifier service."""

    success: bool = Field(..., description="Whether the verifier call succeeded")
    verification_result: str = Field(default="", description="Verifier response body, verbatim")
    response_headers: dict[str, str] = Field(default_factory=dict)
    attestation_ip: str = Field(..., description="Enclave host that produced the document")
    verification_ip: str = Field(..., description="Verifier host that checked the document")
    attestation_size: int = Field(default=0, ge=0)
    enclave_public_key: str | None = Field(default=None, description="0x-prefixed secp256k1 public key")
    warnings: list[ParseWarning] = Field(default_factory=list)


class InferenceResult(BaseModel):
    """Text returned by the inference endpoint plus optional proof material."""

    text: str = Field(..., description="Generated response text")
    signature: str | None = Field(default=None, description="0x-prefixed enclave signature")
    timestamp: int | None = Field(default=None, description="Enclave signing timestamp")
    context: Any = Field(default=None, description="Context value echoed by the backend")
    context_key: str | None = Field(default=None, description="Body key the context was read from")

    @property
    def has_proof(self) -> bool:
        return self.signature is not None and self.timestamp is not None


class InferenceReceipt(BaseModel):
    """The canonical tuple the enclave signed."""

    model_config = ConfigDict(frozen=True)

    model: str
    prompt: str
    prior_context: str = EMPTY_CONTEXT
    response: str
    context: str = EMPTY_CONTEXT

    @classmethod
    def build(
        cls,
        model: str,
        prompt: str,
        response: str,
        context: Any = None,
        prior_context: Any = None,
    ) -> InferenceReceipt:
        """Build a receipt with every field already canonicalized."""
        return cls(
            model=model,
            prompt=normalize_text(prompt),
            prior_context=canonical_context(prior_context),
            response=normalize_text(response),
            context=canonical_context(context),
        )

    def encode(self) -> bytes:
        return encode_receipt(self.model, self.prompt, self.response, self.context, self.prior_context)


class SignatureMaterial(BaseModel):
    """Signature, timestamp and enclave key in the form the oracle expects."""

    signature: str = Field(..., description="0x-prefixed lowercase hex signature")
    timestamp: int = Field(..., description="Unsigned 64-bit signing timestamp")
    enclave_public_key: str | None = Field(default=None, description="0x-prefixed lowercase hex key")

    @field_validator("signature")
    @classmethod
    def _normalize_signature(cls, v: str) -> str:
        return normalize_hex(v)

    @field_validator("enclave_public_key")
    @classmethod
    def _normalize_key(cls, v: str | None) -> str | None:
        return normalize_hex(v) if v is not None else None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _parse_timestamp(cls, v: Any) -> int:
        return parse_timestamp(v)


class MatchVerification(BaseModel):
    """Proof record attached to the matches of one run."""

    job_id: int = Field(..., description="Job whose inference supplied the receipt")
    state: VerificationState = Field(default=VerificationState.HAVE_RECEIPT)
    receipt: InferenceReceipt | None = Field(default=None, description="None when the backend context could not be canonicalized")
    signature_material: SignatureMaterial
    verdict: VerificationVerdict | None = None
    result: str | None = Field(default=None, description="'true', 'false' or 'Verification failed: ...'")
    error: str | None = None
    completed_at: datetime | None = None

    @property
    def is_settled(self) -> bool:
        return self.state in TERMINAL_STATES

    def settle(self, valid: bool, verdict: VerificationVerdict | None = None) -> None:
        """Record the oracle's answer; the record is final afterwards."""
        self._ensure_open()
        self.verdict = verdict or self.verdict
        self.result = "true" if valid else "false"
        self.state = VerificationState.VERIFIED if valid else VerificationState.VERIFICATION_FAILED
        self.completed_at = _utcnow()

    def fail(self, error: str) -> None:
        """Record an attestation or oracle failure; the record is final afterwards."""
        self._ensure_open()
        self.error = error
        self.result = f"Verification failed: {error}"
        self.state = VerificationState.VERIFICATION_FAILED
        self.completed_at = _utcnow()

    def as_display_data(self) -> dict[str, str]:
        data: dict[str, str] = {}
        if self.receipt is not None:
            data.update(prompt=self.receipt.prompt, response=self.receipt.response, context=self.receipt.context)
        data["oysterSignature"] = self.signature_material.signature
        data["oysterTimestamp"] = str(self.signature_material.timestamp)
        if self.signature_material.enclave_public_key:
            data["enclavePublicKey"] = self.signature_material.enclave_public_key
        return data

    def _ensure_open(self) -> None:
        if self.is_settled:
            raise ValueError(f"Verification already settled as {self.state.value}")


class JobPosting(BaseModel):
    """Job posting as read from the marketplace ledger."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    employer: str = ""
    title: str
    description: str = ""
    required_skills: list[str] = Field(default_factory=list, alias="requiredSkills")
    location: str = ""
    salary: int = 0
    is_active: bool = Field(default=True, alias="isActive")


class JobSeeker(BaseModel):
    """Candidate profile as read from the marketplace ledger."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    user: str = ""
    name: str
    skills: list[str] = Field(default_factory=list)
    location: str = ""
    expected_salary: int = Field(default=0, alias="expectedSalary")
    is_active: bool = Field(default=True, alias="isActive")


class AIMatch(BaseModel):
    """One AI-generated job/candidate match."""

    job_id: int
    seeker_id: int
    score: int = Field(..., ge=0, le=100)
    reasoning: str
    job_title: str
    seeker_name: str
    detailed_evaluation: str
    low_confidence: bool = Field(default=False, description="Produced by the degraded heuristic parser")
    verification_result: str | None = None
    verification_data: dict[str, str] | None = None


class MatchRun(BaseModel):
    """Outcome of one orchestrated matching run."""

    matches: list[AIMatch] = Field(default_factory=list)
    verification: MatchVerification | None = None
    state: VerificationState = VerificationState.INIT
    state_history: list[VerificationState] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    def enter(self, state: VerificationState) -> None:
        self.state = state
        self.state_history.append(state)
