"""CLI configuration management for jobproof using pydantic-settings.

Handles enclave/verifier addressing, the ledger RPC and verifier contract,
and construction of the SDK clients from one settings object.
"""

from __future__ import annotations

import httpx
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from web3 import Web3

from jobproof.sdk.attestation import ATTESTATION_PORT, VERIFICATION_PORT, AttestationFetcher, AttestationVerifier
from jobproof.sdk.inference import DEFAULT_CONTEXT_KEYS, INFERENCE_PORT, SignedInferenceClient
from jobproof.sdk.matching import ParseMode
from jobproof.sdk.models import RunContext
from jobproof.sdk.oracle import ResponseVerifier, Web3EnclaveVerifier
from jobproof.sdk.orchestrator import MatchOrchestrator
from jobproof.sdk.polling import DEFAULT_ATTEMPTS, DEFAULT_INTERVAL, DeploymentPoller
from jobproof.sdk.skills import SkillsAssistant


class JobProofConfig(BaseSettings):
    """jobproof configuration using pydantic-settings BaseSettings."""

    model_config = SettingsConfigDict(
        env_prefix='JOBPROOF_',
        env_file='.env',
        env_file_encoding='utf-8',
        secrets_dir='/run/secrets'
    )

    enclave_host: str = Field(
        default="127.0.0.1",
        description="Enclave host serving attestation and inference"
    )
    verifier_host: str = Field(
        default="127.0.0.1",
        description="Attestation verification service host"
    )
    attestation_port: int = Field(default=ATTESTATION_PORT)
    verification_port: int = Field(default=VERIFICATION_PORT)
    inference_port: int = Field(default=INFERENCE_PORT)
    model: str = Field(default="llama3.2", description="Model identifier sent to the enclave")
    http_timeout: float = Field(default=60.0, description="Per-request HTTP timeout in seconds")
    context_keys: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CONTEXT_KEYS),
        description="Inference body keys searched for context, highest precedence first"
    )
    parse_mode: ParseMode = Field(default=ParseMode.DEGRADED)

    rpc_url: str = Field(
        default="https://arb1.arbitrum.io/rpc",
        description="JSON-RPC endpoint of the ledger hosting the verifier contract"
    )
    verifier_contract: str | None = Field(
        default=None,
        description="Enclave verifier contract address"
    )

    ip_api_base: str = Field(default="http://127.0.0.1:8080", description="Deployment control-plane API")
    ip_proxy_url: str | None = Field(default=None, description="Optional proxy the IP lookup is routed through")
    region: str = Field(default="ap-south-1")
    ip_check_attempts: int = Field(default=DEFAULT_ATTEMPTS)
    ip_check_interval: float = Field(default=DEFAULT_INTERVAL)

    @field_validator('attestation_port', 'verification_port', 'inference_port', 'ip_check_attempts')
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate ports and attempt counts are positive."""
        if v <= 0:
            raise ValueError("Value must be positive")
        return v

    @field_validator('verifier_contract')
    @classmethod
    def validate_contract(cls, v: str | None) -> str | None:
        """Validate the verifier contract address if provided."""
        if v is not None and not Web3.is_address(v):
            raise ValueError("Verifier contract must be a 0x-prefixed 20-byte address")
        return v


def create_http_client(config: JobProofConfig) -> httpx.Client:
    """Create HTTP client from configuration."""
    return httpx.Client(timeout=config.http_timeout)


def create_web3(config: JobProofConfig) -> Web3:
    """Create Web3 client from configuration."""
    return Web3(Web3.HTTPProvider(config.rpc_url, request_kwargs={"timeout": config.http_timeout}))


def create_oracle(config: JobProofConfig) -> Web3EnclaveVerifier:
    """Create the verifier contract oracle."""
    if not config.verifier_contract:
        raise ValueError("Verifier contract required. Set JOBPROOF_VERIFIER_CONTRACT environment variable.")
    return Web3EnclaveVerifier(create_web3(config), config.verifier_contract)


def create_run_context(config: JobProofConfig, enclave_host: str | None = None, verifier_host: str | None = None) -> RunContext:
    """Create a run context, letting command-line hosts override configuration."""
    return RunContext(
        enclave_host=enclave_host or config.enclave_host,
        verifier_host=verifier_host or config.verifier_host,
        model=config.model,
    )


def create_attestation_clients(config: JobProofConfig, http_client: httpx.Client) -> tuple[AttestationFetcher, AttestationVerifier]:
    """Create attestation fetcher and verifier sharing one HTTP client."""
    return (
        AttestationFetcher(http_client, config.attestation_port),
        AttestationVerifier(http_client, config.verification_port),
    )


def create_inference_client(config: JobProofConfig, http_client: httpx.Client) -> SignedInferenceClient:
    """Create signed inference client."""
    return SignedInferenceClient(http_client, config.inference_port, config.context_keys)


def create_orchestrator(config: JobProofConfig, http_client: httpx.Client) -> MatchOrchestrator:
    """Wire a matching orchestrator from configuration."""
    fetcher, verifier = create_attestation_clients(config, http_client)
    return MatchOrchestrator(
        create_inference_client(config, http_client),
        fetcher,
        verifier,
        ResponseVerifier(create_oracle(config)),
        config.parse_mode,
    )


def create_skills_assistant(config: JobProofConfig, http_client: httpx.Client, context: RunContext) -> SkillsAssistant:
    """Create the skills and job description assistant."""
    return SkillsAssistant(create_inference_client(config, http_client), context)


def create_poller(config: JobProofConfig, http_client: httpx.Client) -> DeploymentPoller:
    """Create deployment IP poller."""
    return DeploymentPoller(
        http_client,
        config.ip_api_base,
        config.region,
        config.ip_proxy_url,
        config.ip_check_attempts,
        config.ip_check_interval,
    )


def validate_config(config: JobProofConfig) -> None:
    """Validate configuration completeness for verification commands."""
    if not config.verifier_contract:
        raise ValueError("Verifier contract required. Set JOBPROOF_VERIFIER_CONTRACT environment variable.")
    if not config.rpc_url:
        raise ValueError("RPC URL required. Set JOBPROOF_RPC_URL environment variable.")
