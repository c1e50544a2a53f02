"""
Reachability probes for deployed applications.
"""

import shlex
import time
from typing import Any, Dict, Optional
import logging

import requests

from ..remote.executor import RemoteExecutor

logger = logging.getLogger(__name__)

# Any status below this counts as "the app answered".
HEALTHY_BELOW = 500


class SmokeTestResult:
    """Result of a smoke test."""

    def __init__(self, success: bool, message: str, details: Dict[str, Any] = None):
        self.success = success
        self.message = message
        self.details = details or {}

    def __bool__(self) -> bool:
        return self.success


def probe_public_url(public_url: str, max_retries: int = 3, retry_delay: float = 2, timeout: float = 10) -> SmokeTestResult:
    """
    Request ``public_url`` from this machine.

    Args:
        public_url: URL served by nginx on the host
        max_retries: Attempts before giving up
        retry_delay: Delay between attempts in seconds
        timeout: Per-request timeout in seconds

    Returns:
        SmokeTestResult; success means a status below 500 came back
    """
    last_error: Optional[str] = None
    for attempt in range(max_retries):
        try:
            response = requests.get(public_url, timeout=timeout)
            if response.status_code < HEALTHY_BELOW:
                return SmokeTestResult(
                    True,
                    f"{public_url} answered {response.status_code}",
                    {"status": response.status_code, "attempts": attempt + 1},
                )
            last_error = f"{public_url} answered {response.status_code}"
        except requests.exceptions.RequestException as e:
            last_error = f"Request to {public_url} failed: {e}"

        if attempt < max_retries - 1:
            logger.debug(f"Attempt {attempt + 1} failed, retrying in {retry_delay}s...")
            time.sleep(retry_delay)

    return SmokeTestResult(False, last_error or f"{public_url} did not answer", {"attempts": max_retries})


def probe_loopback(executor: RemoteExecutor, port: int, max_retries: int = 3, retry_delay: float = 2) -> SmokeTestResult:
    """
    Request ``http://127.0.0.1:<port>/`` from the remote host itself, bypassing nginx.
    """
    url = f"http://127.0.0.1:{port}/"
    command = f"curl -s -o /dev/null --max-time 10 -w '%{{http_code}}' {shlex.quote(url)}"
    last_error: Optional[str] = None

    for attempt in range(max_retries):
        result = executor.run(command)
        code = result.output.strip()[-3:]
        if result.ok and code.isdigit() and 0 < int(code) < HEALTHY_BELOW:
            return SmokeTestResult(True, f"{url} answered {code} on the host", {"status": int(code)})
        last_error = f"{url} answered {code}" if result.ok and code.isdigit() else f"{url} is not answering on the host"

        if attempt < max_retries - 1:
            time.sleep(retry_delay)

    return SmokeTestResult(False, last_error, {"attempts": max_retries})
