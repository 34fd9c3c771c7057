"""Verifiable enclave-backed job matching.

Attestation retrieval, signed inference and on-chain receipt verification
for AI-generated job/candidate matches.
"""

__version__ = "0.1.0"
