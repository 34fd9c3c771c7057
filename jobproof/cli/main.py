"""Typer CLI for verifiable enclave job matching.

Provides commands: attest, infer, encode-receipt, verify-response, match, wait-ip,
extract-skills, describe-job.
Main entrypoint for the jobproof command-line interface.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TypeVar

import typer
from pydantic import BaseModel, ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from jobproof import __version__
from jobproof.cli.config import (
    JobProofConfig,
    create_attestation_clients,
    create_http_client,
    create_inference_client,
    create_oracle,
    create_orchestrator,
    create_poller,
    create_run_context,
    create_skills_assistant,
    validate_config,
)
from jobproof.sdk.attestation import attest_enclave
from jobproof.sdk.models import JobPosting, JobSeeker, MatchRun, VerificationState
from jobproof.sdk.oracle import ResponseVerifier
from jobproof.sdk.receipt import encode_receipt, normalize_hex, receipt_digest

ModelT = TypeVar("ModelT", bound=BaseModel)

app = typer.Typer(
    name="jobproof",
    help="Verifiable job matching - enclave attestation and signed inference verification",
    add_completion=False,
    rich_markup_mode="rich"
)
console = Console()


def version_callback(show_version: bool) -> None:
    """Show version and exit."""
    if show_version:
        console.print(f"jobproof version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Log pipeline progress to stderr")
) -> None:
    """Verifiable job matching CLI."""
    _configure_logging(verbose)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.command()
def attest(
    enclave_host: str = typer.Option(None, "--enclave-host", "-e", help="Enclave host (defaults to config)"),
    verifier_host: str = typer.Option(None, "--verifier-host", "-V", help="Verifier host (defaults to config)")
) -> None:
    """Fetch a fresh attestation and verify it."""
    try:
        config = JobProofConfig()
        context = create_run_context(config, enclave_host, verifier_host)

        with create_http_client(config) as http_client:
            fetcher, verifier = create_attestation_clients(config, http_client)
            verdict = attest_enclave(fetcher, verifier, context)

        console.print("✅ Attestation verified by service")
        console.print(f"Enclave: {verdict.attestation_ip} ({verdict.attestation_size} bytes)")
        console.print(f"Verifier: {verdict.verification_ip}")
        if verdict.enclave_public_key:
            console.print(f"Enclave public key: [bold]{verdict.enclave_public_key}[/bold]")
        for warning in verdict.warnings:
            console.print(f"⚠️  {warning.message}")
        console.print(f"Verification result: {verdict.verification_result}", markup=False)

    except Exception as e:
        console.print(f"❌ Error during attestation: {e}")
        raise typer.Exit(1)


@app.command()
def infer(
    prompt_file: Path = typer.Argument(..., help="Path to prompt text file"),
    enclave_host: str = typer.Option(None, "--enclave-host", "-e", help="Enclave host (defaults to config)"),
    model: str = typer.Option(None, "--model", "-m", help="Model identifier (defaults to config)"),
    require_proof: bool = typer.Option(False, "--require-proof", help="Fail when the response is not signed")
) -> None:
    """Run one signed generation on the enclave."""
    try:
        config = JobProofConfig()
        prompt = _read_text_file(prompt_file)

        with create_http_client(config) as http_client:
            client = create_inference_client(config, http_client)
            result = client.infer(enclave_host or config.enclave_host, prompt, model or config.model, require_proof)

        console.print(result.text, markup=False)
        if result.has_proof:
            console.print(f"Signature: [bold]{result.signature}[/bold]")
            console.print(f"Timestamp: {result.timestamp}")
        else:
            console.print("⚠️  No enclave signature returned")

    except Exception as e:
        console.print(f"❌ Error running inference: {e}")
        raise typer.Exit(1)


@app.command("encode-receipt")
def encode_receipt_command(
    prompt_file: Path = typer.Option(..., "--prompt", help="Path to prompt text file"),
    response_file: Path = typer.Option(..., "--response", help="Path to response text file"),
    context_value: str = typer.Option(None, "--context", help="Context value returned by the enclave"),
    model: str = typer.Option(None, "--model", "-m", help="Model identifier (defaults to config)")
) -> None:
    """Print the canonical receipt bytes that the enclave signed."""
    try:
        config = JobProofConfig()
        receipt = encode_receipt(
            model or config.model,
            _read_text_file(prompt_file),
            _read_text_file(response_file),
            context_value,
        )
        console.print(f"Receipt digest: [bold]{receipt_digest(receipt)}[/bold]")
        print(normalize_hex(receipt))  # plain output for piping

    except Exception as e:
        console.print(f"❌ Error encoding receipt: {e}")
        raise typer.Exit(1)


@app.command()
def verify_response(
    prompt_file: Path = typer.Option(..., "--prompt", help="Path to prompt text file"),
    response_file: Path = typer.Option(..., "--response", help="Path to response text file"),
    signature: str = typer.Option(..., "--signature", "-s", help="Enclave signature (hex)"),
    timestamp: str = typer.Option(..., "--timestamp", "-t", help="Enclave signing timestamp"),
    context_value: str = typer.Option(None, "--context", help="Context value returned by the enclave"),
    enclave_key: str = typer.Option(None, "--enclave-key", "-k", help="Enclave public key; attested freshly when omitted"),
    enclave_host: str = typer.Option(None, "--enclave-host", "-e", help="Enclave host (defaults to config)"),
    verifier_host: str = typer.Option(None, "--verifier-host", "-V", help="Verifier host (defaults to config)")
) -> None:
    """Verify a signed enclave response against the verifier contract."""
    try:
        config = JobProofConfig()
        validate_config(config)
        run_context = create_run_context(config, enclave_host, verifier_host)

        if not enclave_key:
            with create_http_client(config) as http_client:
                fetcher, verifier = create_attestation_clients(config, http_client)
                verdict = attest_enclave(fetcher, verifier, run_context)
            if not verdict.enclave_public_key:
                raise ValueError("Failed to get enclave public key from attestation")
            enclave_key = verdict.enclave_public_key

        receipt = encode_receipt(
            run_context.model,
            _read_text_file(prompt_file),
            _read_text_file(response_file),
            context_value,
        )
        outcome = ResponseVerifier(create_oracle(config)).check(receipt, timestamp, signature, enclave_key)

        if outcome.valid:
            console.print("✅ Enclave response verified!")
        else:
            console.print(f"❌ {outcome.result}")
        console.print(f"Receipt digest: {receipt_digest(receipt)}")
        console.print(f"Enclave key: {normalize_hex(enclave_key)}")
        if not outcome.valid:
            raise typer.Exit(1)

    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"❌ Error verifying response: {e}")
        raise typer.Exit(1)


@app.command()
def match(
    jobs_file: Path = typer.Argument(..., help="Path to JSON array of job postings"),
    candidates_file: Path = typer.Argument(..., help="Path to JSON array of candidate profiles"),
    enclave_host: str = typer.Option(None, "--enclave-host", "-e", help="Enclave host (defaults to config)"),
    verifier_host: str = typer.Option(None, "--verifier-host", "-V", help="Verifier host (defaults to config)")
) -> None:
    """Run AI matching on the enclave and verify the first response on-chain."""
    try:
        config = JobProofConfig()
        validate_config(config)
        jobs = _load_records(jobs_file, JobPosting)
        candidates = _load_records(candidates_file, JobSeeker)
        context = create_run_context(config, enclave_host, verifier_host)

        with create_http_client(config) as http_client:
            run = create_orchestrator(config, http_client).run(jobs, candidates, context)

        _render_run(run)
        if run.state is VerificationState.MATCHING_FAILED:
            raise typer.Exit(1)

    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"❌ Error running AI matching: {e}")
        raise typer.Exit(1)


@app.command()
def wait_ip(
    job_id: str = typer.Argument(..., help="Deployment job ID"),
    attempts: int = typer.Option(None, "--attempts", "-n", help="Number of lookups (defaults to config)"),
    interval: float = typer.Option(None, "--interval", "-i", help="Seconds between lookups (defaults to config)")
) -> None:
    """Wait until a deployment reports its IP address."""
    try:
        config = JobProofConfig()
        if attempts is not None:
            config.ip_check_attempts = attempts
        if interval is not None:
            config.ip_check_interval = interval

        with create_http_client(config) as http_client:
            ip = create_poller(config, http_client).wait_for_ip(job_id)

        console.print("✅ Deployment is reachable!")
        console.print(f"IP: [bold]{ip}[/bold]")

    except Exception as e:
        console.print(f"❌ Error waiting for deployment IP: {e}")
        raise typer.Exit(1)


@app.command()
def extract_skills(
    source_file: Path = typer.Argument(..., help="Path to a job description or resume text file"),
    resume: bool = typer.Option(False, "--resume", "-r", help="Treat the file as a resume"),
    enclave_host: str = typer.Option(None, "--enclave-host", "-e", help="Enclave host (defaults to config)")
) -> None:
    """Extract a comma-separated skills list with the enclave model."""
    try:
        config = JobProofConfig()
        text = _read_text_file(source_file)
        context = create_run_context(config, enclave_host)

        with create_http_client(config) as http_client:
            assistant = create_skills_assistant(config, http_client, context)
            if resume:
                skills = assistant.extract_skills_from_resume(text)
            else:
                skills = assistant.extract_skills_from_description(text)

        console.print(skills or "No skills found", markup=False)

    except Exception as e:
        console.print(f"❌ Error extracting skills: {e}")
        raise typer.Exit(1)


@app.command()
def describe_job(
    skills: str = typer.Argument(..., help="Comma-separated skills the role requires"),
    title: str = typer.Option(None, "--title", "-T", help="Job title for context"),
    enclave_host: str = typer.Option(None, "--enclave-host", "-e", help="Enclave host (defaults to config)")
) -> None:
    """Draft a job description around a skills list with the enclave model."""
    try:
        config = JobProofConfig()
        context = create_run_context(config, enclave_host)

        with create_http_client(config) as http_client:
            description = create_skills_assistant(config, http_client, context).generate_job_description(skills, title)

        console.print(description, markup=False)

    except Exception as e:
        console.print(f"❌ Error generating job description: {e}")
        raise typer.Exit(1)


def _render_run(run: MatchRun) -> None:
    """Render matches and the verification badge."""
    if not run.matches:
        console.print("No AI matches found")
    else:
        table = Table(title=f"AI matches ({len(run.matches)})")
        table.add_column("Job")
        table.add_column("Candidate")
        table.add_column("Score", justify="right")
        table.add_column("Reasoning")
        for m in run.matches:
            score = f"{m.score}*" if m.low_confidence else str(m.score)
            table.add_row(f"{m.job_id} {m.job_title}", f"{m.seeker_id} {m.seeker_name}", score, m.reasoning)
        console.print(table)
        if any(m.low_confidence for m in run.matches):
            console.print("* low confidence: parsed with the degraded heuristic")

    for error in run.errors:
        console.print(f"⚠️  {error}", markup=False)

    verification = run.verification
    if verification is None:
        console.print(f"Verification: not attempted ({run.state.value})")
    elif verification.state is VerificationState.VERIFIED:
        console.print("Verification: [green]✅ verified[/green]")
    else:
        console.print(f"Verification: [red]❌[/red] {verification.result}")


def _read_text_file(path: Path) -> str:
    """Read a UTF-8 text file."""
    if not path.exists():
        raise ValueError(f"File not found: {path}")
    return path.read_text(encoding="utf-8")


def _load_records(path: Path, model: type[ModelT]) -> list[ModelT]:
    """Load and validate a JSON array of records."""
    if not path.exists():
        raise ValueError(f"File not found: {path}")

    try:
        with path.open() as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"{path.name} must contain a JSON array")
        return [model.model_validate(item) for item in data]
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {path.name}: {e}")
    except ValidationError as e:
        raise ValueError(f"Invalid record in {path.name}: {e}")


if __name__ == "__main__":
    app()
