"""
Location: python/ark_console/gateway.py

Summary:
    DaemonGateway turns barkd REST calls into normalized ActionResult
    values. Transport failures, non-2xx responses and non-JSON error
    bodies are all absorbed here; callers never see an exception.

Usage:
    Constructed once per process from Settings and injected into the
    WalletClient. Tests inject an httpx.AsyncClient backed by
    httpx.MockTransport.

Example:
    from ark_console.gateway import DaemonGateway

    async with DaemonGateway("http://localhost:3000") as gateway:
        result = await gateway.call("/wallet/sync")
        if not result.success:
            print(result.message)
"""

import json
import logging
from typing import Any, Optional, TYPE_CHECKING

import httpx

from .errors import normalize_error
from .types import ActionResult

if TYPE_CHECKING:
    from .config import Settings


logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

# Raw error bodies longer than this are replaced by a generic message.
MAX_RAW_ERROR_LENGTH = 200

NETWORK_ERROR_MESSAGE = "Network error: unable to reach wallet daemon"
TIMEOUT_MESSAGE = "Wallet daemon request timed out"


class DaemonGateway:
    """
    HTTP gateway to the wallet daemon.

    Attributes:
        base_url: Daemon base URL (trailing slash removed)
        timeout: Per-request timeout in seconds
        default_headers: Headers sent with every request
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        headers: Optional[dict[str, str]] = None,
        http: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the gateway.

        Args:
            base_url: Daemon base URL, e.g. "http://127.0.0.1:3000"
            timeout: Per-request timeout in seconds (default 30)
            headers: Optional extra headers for every request
            http: Optional pre-built httpx client (mainly for tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.default_headers = {
            "Content-Type": "application/json",
            "Cache-Control": "no-store",
            **(headers or {}),
        }
        self._http = http or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "DaemonGateway":
        return cls(settings.barkd_url, timeout=settings.DAEMON_TIMEOUT)

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "DaemonGateway":
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    def url_for(self, path: str) -> str:
        """Absolute URL of a daemon API path such as "/wallet/sync"."""
        return f"{self.base_url}{API_PREFIX}{path}"

    async def call(
        self,
        path: str,
        *,
        method: str = "POST",
        body: Optional[dict] = None,
    ) -> ActionResult:
        """
        Perform one daemon request.

        The body is read as text first so that plain-text or HTML error
        pages do not break parsing.

        Args:
            path: API path below /api/v1
            method: HTTP method (default POST)
            body: Optional JSON body

        Returns:
            ActionResult with the parsed body as data on 2xx, or the
            extracted error message otherwise
        """
        url = self.url_for(path)
        try:
            response = await self._http.request(
                method,
                url,
                json=body,
                headers=self.default_headers,
            )
        except httpx.TimeoutException:
            logger.warning("Daemon request timed out: %s %s", method, path)
            return ActionResult(success=False, message=TIMEOUT_MESSAGE)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Daemon request failed: %s %s (%s)", method, path, exc)
            return ActionResult(success=False, message=NETWORK_ERROR_MESSAGE)

        raw = response.text
        parsed = _parse_json(raw)

        if not response.is_success:
            message = extract_error_message(parsed, raw, response.status_code)
            logger.warning(
                "Daemon returned %s for %s %s: %s",
                response.status_code, method, path, message,
            )
            return ActionResult(success=False, message=message)

        return ActionResult(success=True, data=parsed)


def _parse_json(raw: str) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


def extract_error_message(parsed: Any, raw: str, status_code: int) -> str:
    """
    Pick the most useful message from a failed response.

    Preference: body.message, then body.error, then the raw text when it
    is short, else a generic "Request failed: <status>".
    """
    if isinstance(parsed, dict):
        message = parsed.get("message")
        if message:
            return normalize_error(message)
        error = parsed.get("error")
        if error:
            return normalize_error(error)

    text = raw.strip()
    if text and len(text) <= MAX_RAW_ERROR_LENGTH:
        return text

    return f"Request failed: {status_code}"
