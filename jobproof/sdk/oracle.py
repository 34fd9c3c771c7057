"""On-chain verification of signed enclave responses.

The verifier contract exposes a read-only ``verifyEnclaveResponse`` that
recomputes the receipt digest and checks the enclave's signature over it.
"""

from __future__ import annotations

import logging
from typing import Protocol

from pydantic import BaseModel, Field
from web3 import Web3

from jobproof.sdk.exceptions import VerificationFailed
from jobproof.sdk.receipt import hex_to_bytes, parse_timestamp, receipt_digest

logger = logging.getLogger(__name__)

ENCLAVE_VERIFIER_ABI = [
    {
        "type": "function",
        "name": "verifyEnclaveResponse",
        "stateMutability": "view",
        "inputs": [
            {"name": "receiptData", "type": "bytes"},
            {"name": "timestamp", "type": "uint256"},
            {"name": "signature", "type": "bytes"},
            {"name": "enclavePublicKey", "type": "bytes"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    }
]


class EnclaveVerifierOracle(Protocol):
    """Anything that can answer whether a signature is valid for a receipt."""

    def verify_enclave_response(self, receipt: bytes, timestamp: int, signature: bytes, public_key: bytes) -> bool:
        ...


class Web3EnclaveVerifier:
    """Queries the verifier contract with an ``eth_call``; never sends a transaction."""

    def __init__(self, web3: Web3, address: str):
        if not web3:
            raise ValueError("Web3 client is required")
        if not Web3.is_address(address):
            raise ValueError(f"Invalid verifier contract address: {address}")
        self.web3 = web3
        self.address = Web3.to_checksum_address(address)
        self.contract = web3.eth.contract(address=self.address, abi=ENCLAVE_VERIFIER_ABI)

    def verify_enclave_response(self, receipt: bytes, timestamp: int, signature: bytes, public_key: bytes) -> bool:
        result = self.contract.functions.verifyEnclaveResponse(receipt, timestamp, signature, public_key).call()
        return bool(result)


class ResponseVerdict(BaseModel):
    """Non-throwing outcome of a response verification."""

    valid: bool | None = Field(default=None, description="Oracle answer, None when it could not be obtained")
    result: str = Field(..., description="'true', 'false' or 'Verification failed: <reason>'")

    @property
    def failed(self) -> bool:
        return self.valid is not True


class ResponseVerifier:
    """Checks a receipt, timestamp, signature and enclave key against the oracle."""

    def __init__(self, oracle: EnclaveVerifierOracle):
        if not oracle:
            raise ValueError("Verifier oracle is required")
        self.oracle = oracle

    def verify(self, receipt: bytes, timestamp: int | str, signature: str | bytes, enclave_public_key: str | bytes) -> bool:
        """Ask the oracle whether the signature is valid for the receipt.

        Raises:
            VerificationFailed: The oracle call itself failed
        """
        if not receipt:
            raise ValueError("Receipt data is required")
        if not signature or not enclave_public_key:
            raise ValueError("Signature and enclave public key are required")

        ts = parse_timestamp(timestamp)
        sig_bytes = hex_to_bytes(signature)
        key_bytes = hex_to_bytes(enclave_public_key)
        logger.info(
            "Verifying receipt %s (%d bytes) at timestamp %d with %d-byte signature",
            receipt_digest(receipt), len(receipt), ts, len(sig_bytes),
        )
        try:
            valid = self.oracle.verify_enclave_response(receipt, ts, sig_bytes, key_bytes)
        except Exception as e:
            logger.warning("Oracle verification call failed: %s", e)
            raise VerificationFailed(f"Oracle call failed: {e}") from e
        logger.info("Oracle verification result: %s", valid)
        return bool(valid)

    def check(self, receipt: bytes, timestamp: int | str, signature: str | bytes, enclave_public_key: str | bytes) -> ResponseVerdict:
        """Like :meth:`verify` but reports every failure as a result string."""
        try:
            valid = self.verify(receipt, timestamp, signature, enclave_public_key)
        except (VerificationFailed, ValueError, TypeError) as e:
            return ResponseVerdict(valid=None, result=f"Verification failed: {e}")
        return ResponseVerdict(valid=valid, result=str(valid).lower())
