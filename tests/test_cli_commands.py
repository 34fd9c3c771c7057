"""Test CLI commands and configuration.

Unit tests for the jobproof CLI covering configuration loading, argument
handling and each command against fake enclave, verifier and ledger.
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest
from pydantic import ValidationError
from typer.testing import CliRunner

from jobproof.cli.config import JobProofConfig, create_oracle, create_run_context, validate_config
from jobproof.cli.main import _load_records, app
from jobproof.sdk.matching import ParseMode
from jobproof.sdk.models import JobPosting
from jobproof.sdk.oracle import Web3EnclaveVerifier
from jobproof.sdk.receipt import encode_receipt, encode_receipt_hex, receipt_digest
from tests.helpers import ENCLAVE, SIGNATURE, TIMESTAMP, FakeEnclave, FakeOracle, generation, match_report

CONTRACT = "0x" + "11" * 20


@pytest.fixture
def runner() -> CliRunner:
    """CLI test runner fixture."""
    return CliRunner()


@pytest.fixture
def contract_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Configure a verifier contract for commands that need one."""
    monkeypatch.setenv("JOBPROOF_VERIFIER_CONTRACT", CONTRACT)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host environment settings out of the tests."""
    for name in ("JOBPROOF_VERIFIER_CONTRACT", "JOBPROOF_ENCLAVE_HOST", "JOBPROOF_VERIFIER_HOST", "JOBPROOF_MODEL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def texts(tmp_path: Path) -> tuple[Path, Path]:
    prompt = tmp_path / "prompt.txt"
    response = tmp_path / "response.txt"
    prompt.write_text("Rate this candidate", encoding="utf-8")
    response.write_text("Score 80", encoding="utf-8")
    return prompt, response


@pytest.fixture
def records(tmp_path: Path) -> tuple[Path, Path]:
    jobs = tmp_path / "jobs.json"
    candidates = tmp_path / "candidates.json"
    jobs.write_text(json.dumps([
        {"id": 1, "title": "Backend Engineer", "requiredSkills": ["Python"], "salary": 100000},
    ]))
    candidates.write_text(json.dumps([
        {"id": 10, "name": "Ada", "skills": ["Python"], "expectedSalary": 90000},
        {"id": 11, "name": "Grace", "skills": ["Go"], "isActive": True},
    ]))
    return jobs, candidates


def test_config_load_from_env(monkeypatch: pytest.MonkeyPatch):
    """Test configuration loading from environment variables."""
    monkeypatch.setenv("JOBPROOF_ENCLAVE_HOST", "203.0.113.10")
    monkeypatch.setenv("JOBPROOF_VERIFIER_CONTRACT", CONTRACT)
    monkeypatch.setenv("JOBPROOF_CONTEXT_KEYS", '["ctx", "tokens"]')
    monkeypatch.setenv("JOBPROOF_PARSE_MODE", "strict")

    config = JobProofConfig()

    assert config.enclave_host == "203.0.113.10"
    assert config.verifier_contract == CONTRACT
    assert config.context_keys == ["ctx", "tokens"]
    assert config.parse_mode is ParseMode.STRICT
    assert config.model == "llama3.2"


def test_config_defaults():
    """Test default ports and polling settings."""
    config = JobProofConfig()

    assert (config.attestation_port, config.verification_port, config.inference_port) == (1301, 1400, 5000)
    assert (config.ip_check_attempts, config.ip_check_interval) == (15, 5.0)
    assert config.parse_mode is ParseMode.DEGRADED


def test_config_rejects_invalid_values():
    """Test invalid contract addresses and ports are rejected."""
    with pytest.raises(ValidationError, match="20-byte address"):
        JobProofConfig(verifier_contract="0x1234")
    with pytest.raises(ValidationError, match="must be positive"):
        JobProofConfig(inference_port=0)


def test_config_validation_missing_contract():
    """Test verification commands need a verifier contract."""
    with pytest.raises(ValueError, match="Verifier contract required"):
        validate_config(JobProofConfig())
    validate_config(JobProofConfig(verifier_contract=CONTRACT))


def test_create_oracle(contract_env):
    """Test the oracle is bound to the configured contract."""
    oracle = create_oracle(JobProofConfig())

    assert isinstance(oracle, Web3EnclaveVerifier)
    assert oracle.address.lower() == CONTRACT


def test_create_run_context_overrides():
    """Test command-line hosts override configured ones."""
    config = JobProofConfig(enclave_host="1.1.1.1", verifier_host="2.2.2.2", model="m")

    assert create_run_context(config).enclave_host == "1.1.1.1"
    context = create_run_context(config, enclave_host="3.3.3.3")
    assert (context.enclave_host, context.verifier_host, context.model) == ("3.3.3.3", "2.2.2.2", "m")


def test_load_records_accepts_aliases(records: tuple[Path, Path]):
    """Test marketplace records load with their camelCase field names."""
    (job,) = _load_records(records[0], JobPosting)

    assert job.required_skills == ["Python"]
    assert job.is_active


def test_load_records_errors(tmp_path: Path):
    """Test record loading failures are reported as ValueError."""
    broken = tmp_path / "broken.json"
    broken.write_text("[{")
    single = tmp_path / "single.json"
    single.write_text('{"id": 1}')

    with pytest.raises(ValueError, match="File not found"):
        _load_records(tmp_path / "missing.json", JobPosting)
    with pytest.raises(ValueError, match="Invalid JSON"):
        _load_records(broken, JobPosting)
    with pytest.raises(ValueError, match="must contain a JSON array"):
        _load_records(single, JobPosting)


def test_cli_version_display(runner: CliRunner):
    """Test CLI version display."""
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert "jobproof version 0.1.0" in result.output


@patch("jobproof.cli.main.create_http_client")
def test_attest_command_success(mock_http, runner: CliRunner):
    """Test attestation command prints the verified enclave key."""
    enclave = FakeEnclave()
    mock_http.return_value = enclave.client()

    result = runner.invoke(app, ["attest", "--enclave-host", ENCLAVE])

    assert result.exit_code == 0
    assert "Attestation verified by service" in result.output
    assert "0x04cdcd" in result.output
    assert str(enclave.requests[0].url).startswith(f"http://{ENCLAVE}:1301")


@patch("jobproof.cli.main.create_http_client")
def test_attest_command_failure(mock_http, runner: CliRunner):
    """Test attestation command exits with an error on failure."""
    enclave = FakeEnclave()
    enclave.attestation = lambda r: httpx.Response(500)
    mock_http.return_value = enclave.client()

    result = runner.invoke(app, ["attest"])

    assert result.exit_code == 1
    assert "Error during attestation" in result.output


@patch("jobproof.cli.main.create_http_client")
def test_infer_command(mock_http, runner: CliRunner, texts: tuple[Path, Path]):
    """Test inference command prints text and signature material."""
    enclave = FakeEnclave()
    enclave.generate.append(generation("Hello from the enclave"))
    mock_http.return_value = enclave.client()

    result = runner.invoke(app, ["infer", str(texts[0])])

    assert result.exit_code == 0
    assert "Hello from the enclave" in result.output
    assert f"Timestamp: {TIMESTAMP}" in result.output


def test_infer_command_missing_file(runner: CliRunner, tmp_path: Path):
    """Test inference command with a missing prompt file."""
    result = runner.invoke(app, ["infer", str(tmp_path / "nope.txt")])

    assert result.exit_code == 1
    assert "File not found" in result.output


def test_encode_receipt_command(runner: CliRunner, texts: tuple[Path, Path]):
    """Test receipt encoding prints the digest and hex receipt."""
    result = runner.invoke(app, [
        "encode-receipt", "--prompt", str(texts[0]), "--response", str(texts[1]), "--context", "[1,2]",
    ])

    assert result.exit_code == 0
    receipt = encode_receipt("llama3.2", "Rate this candidate", "Score 80", "[1,2]")
    assert receipt_digest(receipt) in result.output
    assert encode_receipt_hex("llama3.2", "Rate this candidate", "Score 80", "[1,2]") in result.output


@patch("jobproof.cli.main.create_oracle")
def test_verify_response_with_key(mock_oracle, runner: CliRunner, contract_env, texts: tuple[Path, Path]):
    """Test response verification with a supplied enclave key."""
    oracle = FakeOracle(answer=True)
    mock_oracle.return_value = oracle

    result = runner.invoke(app, [
        "verify-response", "--prompt", str(texts[0]), "--response", str(texts[1]),
        "-s", SIGNATURE, "-t", str(TIMESTAMP), "-k", "0x04ab",
    ])

    assert result.exit_code == 0
    assert "Enclave response verified" in result.output
    (call,) = oracle.calls
    assert call[0] == encode_receipt("llama3.2", "Rate this candidate", "Score 80")
    assert call[3] == b"\x04\xab"


@patch("jobproof.cli.main.create_oracle")
@patch("jobproof.cli.main.create_http_client")
def test_verify_response_attests_for_key(mock_http, mock_oracle, runner: CliRunner, contract_env, texts: tuple[Path, Path]):
    """Test the enclave key is attested freshly when not supplied."""
    enclave = FakeEnclave()
    mock_http.return_value = enclave.client()
    mock_oracle.return_value = FakeOracle(answer=False)

    result = runner.invoke(app, [
        "verify-response", "--prompt", str(texts[0]), "--response", str(texts[1]),
        "-s", SIGNATURE, "-t", str(TIMESTAMP),
    ])

    assert result.exit_code == 1
    assert "❌ false" in result.output
    assert enclave.paths() == ["/attestation/raw", "/verify/raw"]


def test_verify_response_missing_contract(runner: CliRunner, texts: tuple[Path, Path]):
    """Test response verification requires a verifier contract."""
    result = runner.invoke(app, [
        "verify-response", "--prompt", str(texts[0]), "--response", str(texts[1]),
        "-s", SIGNATURE, "-t", str(TIMESTAMP), "-k", "0x04ab",
    ])

    assert result.exit_code == 1
    assert "Verifier contract required" in result.output


@patch("jobproof.cli.config.create_oracle")
@patch("jobproof.cli.main.create_http_client")
def test_match_command_verified(mock_http, mock_oracle, runner: CliRunner, contract_env, records: tuple[Path, Path]):
    """Test matching command renders matches and the verification badge."""
    enclave = FakeEnclave()
    enclave.generate.append(generation(match_report((10, 88))))
    mock_http.return_value = enclave.client()
    mock_oracle.return_value = FakeOracle(answer=True)

    result = runner.invoke(app, ["match", str(records[0]), str(records[1])])

    assert result.exit_code == 0
    assert "Ada" in result.output
    assert "88" in result.output
    assert "verified" in result.output


@patch("jobproof.cli.config.create_oracle")
@patch("jobproof.cli.main.create_http_client")
def test_match_command_matching_failed(mock_http, mock_oracle, runner: CliRunner, contract_env, records: tuple[Path, Path]):
    """Test matching command exits with an error when no job could be matched."""
    mock_http.return_value = FakeEnclave().client()
    mock_oracle.return_value = FakeOracle()

    result = runner.invoke(app, ["match", str(records[0]), str(records[1])])

    assert result.exit_code == 1
    assert "not attempted" in result.output


def test_match_command_invalid_records(runner: CliRunner, contract_env, tmp_path: Path, records: tuple[Path, Path]):
    """Test matching command with an invalid jobs file."""
    broken = tmp_path / "broken.json"
    broken.write_text("not json")

    result = runner.invoke(app, ["match", str(broken), str(records[1])])

    assert result.exit_code == 1
    assert "Invalid JSON" in result.output


@patch("jobproof.cli.main.create_http_client")
def test_wait_ip_command(mock_http, runner: CliRunner):
    """Test deployment IP polling command."""
    answers = [httpx.Response(200, json={}), httpx.Response(200, json={"ip": "13.0.0.7"})]
    mock_http.return_value = httpx.Client(transport=httpx.MockTransport(lambda r: answers.pop(0)))

    result = runner.invoke(app, ["wait-ip", "job-1", "--interval", "0"])

    assert result.exit_code == 0
    assert "13.0.0.7" in result.output


@patch("jobproof.cli.main.create_http_client")
def test_wait_ip_command_not_found(mock_http, runner: CliRunner):
    """Test deployment IP polling gives up after the given attempts."""
    mock_http.return_value = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})))

    result = runner.invoke(app, ["wait-ip", "job-1", "-n", "2", "-i", "0"])

    assert result.exit_code == 1
    assert "IP not found after 2 attempts" in result.output


@patch("jobproof.cli.main.create_http_client")
def test_infer_command_require_proof(mock_http, runner: CliRunner, texts: tuple[Path, Path]):
    """Test inference command fails on unsigned output when proof is required."""
    enclave = FakeEnclave()
    enclave.generate.append(generation("unsigned", signed=False))
    mock_http.return_value = enclave.client()

    result = runner.invoke(app, ["infer", str(texts[0]), "--require-proof"])

    assert result.exit_code == 1
    assert "Error running inference" in result.output


@patch("jobproof.cli.main.create_http_client")
def test_extract_skills_command(mock_http, runner: CliRunner, tmp_path: Path):
    """Test skills are extracted from a job description file."""
    description = tmp_path / "job.txt"
    description.write_text("Backend role with Go and Kubernetes", encoding="utf-8")
    enclave = FakeEnclave()
    enclave.generate.append(generation("Go, Kubernetes."))
    mock_http.return_value = enclave.client()

    result = runner.invoke(app, ["extract-skills", str(description)])

    assert result.exit_code == 0
    assert "Go, Kubernetes" in result.output
    assert "job description" in json.loads(enclave.requests[0].content)["prompt"]


@patch("jobproof.cli.main.create_http_client")
def test_extract_skills_command_resume(mock_http, runner: CliRunner, tmp_path: Path):
    """Test the resume flag switches to the resume prompt."""
    resume = tmp_path / "resume.txt"
    resume.write_text("Senior engineer, Rust and Postgres", encoding="utf-8")
    enclave = FakeEnclave()
    enclave.generate.append(generation("Rust, PostgreSQL"))
    mock_http.return_value = enclave.client()

    result = runner.invoke(app, ["extract-skills", str(resume), "--resume"])

    assert result.exit_code == 0
    assert "Rust, PostgreSQL" in result.output
    assert json.loads(enclave.requests[0].content)["prompt"].endswith("Resume:\nSenior engineer, Rust and Postgres")


@patch("jobproof.cli.main.create_http_client")
def test_extract_skills_command_failure(mock_http, runner: CliRunner, tmp_path: Path):
    description = tmp_path / "job.txt"
    description.write_text("Backend role", encoding="utf-8")
    mock_http.return_value = FakeEnclave().client()

    result = runner.invoke(app, ["extract-skills", str(description)])

    assert result.exit_code == 1
    assert "Error extracting skills" in result.output


@patch("jobproof.cli.main.create_http_client")
def test_describe_job_command(mock_http, runner: CliRunner):
    """Test a job description is drafted from a skills list."""
    enclave = FakeEnclave()
    enclave.generate.append(generation("Build data pipelines in Python."))
    mock_http.return_value = enclave.client()

    result = runner.invoke(app, ["describe-job", "Python, SQL", "--title", "Data Engineer"])

    assert result.exit_code == 0
    assert "Build data pipelines in Python." in result.output
    assert "for a Data Engineer position" in json.loads(enclave.requests[0].content)["prompt"]


def test_describe_job_command_empty_skills(runner: CliRunner):
    result = runner.invoke(app, ["describe-job", " "])

    assert result.exit_code == 1
    assert "Skills are required" in result.output
