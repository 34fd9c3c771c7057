"""Polling for a freshly deployed enclave's network address.

After an enclave job is opened on the marketplace, the provider's control
plane needs some time before it reports the instance IP. The poller asks a
fixed number of times with a fixed interval and gives up with ``NotFound``.
"""

from __future__ import annotations

import json
import logging
import threading
from urllib.parse import quote, urlencode

import httpx

from jobproof.sdk.exceptions import NetworkError, NotFound, PollingCancelled, TransportError
from jobproof.sdk.transport import send

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 15
DEFAULT_INTERVAL = 5.0


class DeploymentPoller:
    """Bounded, cancellable wait for a deployment's IP address."""

    def __init__(
        self,
        http_client: httpx.Client,
        api_base: str,
        region: str,
        proxy_url: str | None = None,
        attempts: int = DEFAULT_ATTEMPTS,
        interval: float = DEFAULT_INTERVAL,
    ):
        if not http_client:
            raise ValueError("HTTP client is required")
        if not api_base or not region:
            raise ValueError("API base URL and region are required")
        if attempts <= 0:
            raise ValueError("Attempts must be positive")
        if interval < 0:
            raise ValueError("Interval must not be negative")
        self.http_client = http_client
        self.api_base = api_base.rstrip("/")
        self.region = region
        self.proxy_url = proxy_url
        self.attempts = attempts
        self.interval = interval

    def lookup_url(self, job_id: str) -> str:
        target = f"{self.api_base}/ip?{urlencode({'id': job_id, 'region': self.region})}"
        if not self.proxy_url:
            return target
        return f"{self.proxy_url}?url={quote(target, safe='')}"

    def wait_for_ip(self, job_id: str, cancel: threading.Event | None = None) -> str:
        """Return the deployment IP once the control plane reports it.

        Raises:
            NotFound: No IP after the configured number of attempts
            PollingCancelled: ``cancel`` was set while waiting
        """
        if not job_id:
            raise ValueError("Job ID is required")
        cancel = cancel or threading.Event()
        url = self.lookup_url(job_id)
        last_response = ""

        for attempt in range(1, self.attempts + 1):
            if cancel.is_set():
                raise PollingCancelled(f"IP lookup for job {job_id} cancelled")
            logger.info("Checking for IP (attempt %d/%d)", attempt, self.attempts)
            try:
                last_response = send(self.http_client, "GET", url, "IP lookup").text
                ip = _parse_ip(last_response)
                if ip:
                    logger.info("Deployment %s is reachable at %s", job_id, ip)
                    return ip
            except (TransportError, NetworkError) as e:
                last_response = str(e)
            except ValueError:
                logger.warning("Failed to parse IP lookup response: %s", last_response[:200])

            if attempt < self.attempts:
                logger.info("IP not found yet, waiting %.1fs", self.interval)
                if cancel.wait(self.interval):
                    raise PollingCancelled(f"IP lookup for job {job_id} cancelled")

        raise NotFound(f"IP not found after {self.attempts} attempts. Last response: {last_response}")


def _parse_ip(text: str) -> str | None:
    body = json.loads(text)
    if not isinstance(body, dict):
        raise ValueError("IP lookup response must be a JSON object")
    ip = body.get("ip")
    return ip.strip() if isinstance(ip, str) and ip.strip() else None
