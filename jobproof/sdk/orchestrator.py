"""Matching run orchestration with enclave response verification.

Jobs are processed one after another. The first successful generation
supplies the receipt for the run; if it carries enclave signature material
the run fetches a fresh attestation, recovers the enclave key and asks the
verifier contract to check the signature. Verification problems never hide
the matches: they are attached to every match as a result string.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from jobproof.sdk.attestation import AttestationFetcher, AttestationVerifier, attest_enclave
from jobproof.sdk.exceptions import JobProofError, NetworkError, NoActiveEntities, ParseFailure, TransportError
from jobproof.sdk.inference import SignedInferenceClient
from jobproof.sdk.matching import ParseMode, build_match_prompt, extract_matches
from jobproof.sdk.models import (
    AIMatch,
    InferenceReceipt,
    InferenceResult,
    JobPosting,
    JobSeeker,
    MatchRun,
    MatchVerification,
    RunContext,
    SignatureMaterial,
    VerificationState,
)
from jobproof.sdk.oracle import ResponseVerifier
from jobproof.sdk.receipt import receipt_digest

logger = logging.getLogger(__name__)


class MatchOrchestrator:
    """Drives one matching run from inference through verification."""

    def __init__(
        self,
        inference: SignedInferenceClient,
        fetcher: AttestationFetcher,
        verifier: AttestationVerifier,
        response_verifier: ResponseVerifier,
        parse_mode: ParseMode = ParseMode.DEGRADED,
    ):
        if not inference or not fetcher or not verifier or not response_verifier:
            raise ValueError("Inference, attestation and verification clients are required")
        self.inference = inference
        self.fetcher = fetcher
        self.verifier = verifier
        self.response_verifier = response_verifier
        self.parse_mode = parse_mode

    def run(self, jobs: Sequence[JobPosting], candidates: Sequence[JobSeeker], context: RunContext) -> MatchRun:
        """Match every active job against the active candidates.

        Raises:
            NoActiveEntities: No active job or no active candidate was given
        """
        active_jobs = [j for j in jobs if j.is_active]
        active_candidates = [c for c in candidates if c.is_active]
        if not active_jobs or not active_candidates:
            raise NoActiveEntities("No active jobs or candidates found for AI matching.")

        run = MatchRun()
        run.enter(VerificationState.INIT)
        run.enter(VerificationState.INFERRING)
        logger.info("Matching %d jobs against %d candidates", len(active_jobs), len(active_candidates))

        first_job: JobPosting | None = None
        first_result: InferenceResult | None = None
        first_prompt = ""
        for job in active_jobs:
            prompt = build_match_prompt(job, active_candidates)
            try:
                result = self.inference.infer(context.enclave_host, prompt, context.model)
            except (TransportError, NetworkError, ParseFailure) as e:
                logger.warning("Skipping job %d: %s", job.id, e)
                run.errors.append(f"Job {job.id}: {e}")
                continue
            if first_result is None:
                first_job, first_result, first_prompt = job, result, prompt

            try:
                run.matches.extend(extract_matches(result.text, job, active_candidates, self.parse_mode))
            except ParseFailure as e:
                logger.warning("Unparseable match report for job %d: %s", job.id, e)
                run.errors.append(f"Job {job.id}: {e}")

        if first_result is None or first_job is None:
            run.enter(VerificationState.MATCHING_FAILED)
            logger.warning("AI matching failed: no job produced an inference result")
            return run

        run.matches.sort(key=lambda m: m.score, reverse=True)
        if not first_result.has_proof:
            logger.info("No enclave signature material returned; skipping verification")
            return run

        run.verification = self._verify(run, first_job, first_prompt, first_result, context)
        _annotate(run.matches, run.verification)
        return run

    def _verify(
        self,
        run: MatchRun,
        job: JobPosting,
        prompt: str,
        result: InferenceResult,
        context: RunContext,
    ) -> MatchVerification:
        verification = MatchVerification(
            job_id=job.id,
            signature_material=SignatureMaterial(signature=result.signature, timestamp=result.timestamp),
        )
        try:
            receipt = InferenceReceipt.build(context.model, prompt, result.text, result.context)
        except ValueError as e:
            logger.warning("Unusable context from job %d (%s): %s", job.id, result.context_key, e)
            verification.fail(f"Unusable context from enclave: {e}")
            run.enter(verification.state)
            return verification

        verification.receipt = receipt
        encoded = receipt.encode()
        run.enter(VerificationState.HAVE_RECEIPT)
        try:
            run.enter(VerificationState.ATTESTING)
            verdict = attest_enclave(self.fetcher, self.verifier, context)
            if not verdict.success or not verdict.enclave_public_key:
                raise JobProofError("Failed to get enclave public key from attestation")
            verification.verdict = verdict
            verification.signature_material.enclave_public_key = verdict.enclave_public_key

            run.enter(VerificationState.VERIFYING)
            logger.info("Verifying job %d receipt %s", job.id, receipt_digest(encoded))
            valid = self.response_verifier.verify(
                encoded,
                verification.signature_material.timestamp,
                verification.signature_material.signature,
                verdict.enclave_public_key,
            )
            verification.settle(valid, verdict)
        except Exception as e:
            logger.warning("Verification error: %s", e)
            verification.fail(str(e))
        run.enter(verification.state)
        return verification


def _annotate(matches: list[AIMatch], verification: MatchVerification) -> None:
    data = verification.as_display_data()
    for match in matches:
        match.verification_result = verification.result
        match.verification_data = dict(data)
