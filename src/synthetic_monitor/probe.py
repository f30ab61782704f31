"""Reachability checks against node health endpoints."""

import logging
import re
import time

import httpx

from synthetic_monitor.errors import ProbeFailure
from synthetic_monitor.models import ProbeResult

logger = logging.getLogger(__name__)

IPV4_PATTERN = re.compile(
    r"^(?:(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}"
    r"(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)$"
)
IPV6_PATTERN = re.compile(r"^([0-9a-fA-F]{0,4}:){2,7}[0-9a-fA-F]{0,4}$")


def is_ip_address(host: str) -> bool:
    """Whether host is an IPv4 dotted quad or an IPv6 colon-hex literal."""
    return bool(IPV4_PATTERN.match(host) or IPV6_PATTERN.match(host))


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class HealthProbe:
    """Single HTTP reachability check with a fixed timeout.

    IP literals are checked with ``HEAD`` and hostnames with ``GET``, both
    against the node's health path. A 404 counts as success: the server
    answered, and whether it routes the health path is irrelevant. This
    leniency is intentional.

    The probe never retries; callers decide on retry policy.
    """

    def __init__(
        self,
        timeout_ms: int = 5000,
        health_path: str = "/health",
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize health probe.

        Args:
            timeout_ms: Upper bound for a single check.
            health_path: Path requested on the node.
            client: Optional preconfigured HTTP client.
        """
        self.timeout_ms = timeout_ms
        self.health_path = health_path
        self._client = client or httpx.Client()

    def probe(self, host: str, port: int) -> ProbeResult:
        """Check whether host:port answers on the health path.

        Returns:
            ProbeResult; the elapsed time is set on success and failure.
        """
        check_type = "ip" if is_ip_address(host) else "url"
        method = "HEAD" if check_type == "ip" else "GET"
        url = self.build_url(host, port)

        logger.debug(f"Probing {url} ({method}, type: {check_type})")

        start = time.perf_counter()
        try:
            status_code = self._request(method, url)
        except ProbeFailure as e:
            result = ProbeResult(
                success=False,
                response_time_ms=_elapsed_ms(start),
                check_type=check_type,
                error_message=e.message,
                status_code=e.status_code,
            )
            logger.info(f"Probe of {host}:{port} failed: {e.message}")
            return result

        return ProbeResult(
            success=True,
            response_time_ms=_elapsed_ms(start),
            check_type=check_type,
            status_code=status_code,
        )

    def build_url(self, host: str, port: int) -> str:
        if ":" in host and not host.startswith("["):
            host = f"[{host}]"
        return f"http://{host}:{port}{self.health_path}"

    def _request(self, method: str, url: str) -> int:
        try:
            response = self._client.request(
                method,
                url,
                timeout=self.timeout_ms / 1000,
                follow_redirects=True,
            )
        except httpx.TimeoutException as e:
            raise ProbeFailure(f"Timeout after {self.timeout_ms} ms") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ProbeFailure(f"Connection failed: {e}") from e

        if response.is_success or response.status_code == 404:
            return response.status_code

        raise ProbeFailure(
            f"HTTP {response.status_code} {response.reason_phrase}".rstrip(),
            status_code=response.status_code,
        )

    def close(self) -> None:
        self._client.close()
