"""Shared HTTP plumbing for the enclave, verifier and deployment endpoints."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from jobproof.sdk.exceptions import NetworkError, TransportError

logger = logging.getLogger(__name__)


def endpoint_url(host: str, port: int, path: str) -> str:
    """Build ``http://{host}:{port}{path}`` from a bare host address."""
    host = (host or "").strip()
    if not host:
        raise ValueError("Host address is required")
    if port <= 0:
        raise ValueError("Port must be positive")
    return f"http://{host}:{port}{path}"


def send(client: httpx.Client, method: str, url: str, label: str, **kwargs: Any) -> httpx.Response:
    """Issue one request and map failures onto the pipeline's error taxonomy.

    Args:
        client: HTTP client to send with
        method: HTTP method
        url: Absolute URL
        label: Human name of the call, used as the error message prefix
        **kwargs: Passed through to ``httpx.Client.request``

    Raises:
        NetworkError: The connection failed, timed out or the body could not be decoded
        TransportError: The server answered with a non-success status
    """
    try:
        response = client.request(method, url, **kwargs)
    except httpx.RequestError as e:
        logger.warning("%s to %s failed: %s", label, url, e)
        raise NetworkError(f"{label} to {url} failed: {e}", {"url": url}) from e

    if not response.is_success:
        logger.warning("%s to %s returned status %d", label, url, response.status_code)
        raise TransportError(
            f"{label} failed with status {response.status_code}",
            response.status_code,
            {"url": url, "body": response.text[:500]},
        )
    return response
