"""
Shared HTTP plumbing for the Intercom and Asana clients.
"""

import logging
import time
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)


class IntegrationAPIError(Exception):
    """Raised when a remote API call fails after retries"""

    def __init__(self, message: str, status_code: Optional[int] = None, response_text: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_text = response_text


class BaseAPIClient:
    """requests.Session wrapper with bounded timeouts and retry/backoff"""

    service_name = "API"
    error_class = IntegrationAPIError
    # Safe to resend when the outcome of the first attempt is unknown
    IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})

    def __init__(self, base_url: str, headers: Dict[str, str], timeout: float = 30,
                 max_retries: int = 3, backoff_factor: float = 1.5, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.backoff_factor = backoff_factor
        self.session = session or requests.Session()
        self.session.headers.update(headers)

    def _sleep(self, seconds: float) -> None:
        time.sleep(seconds)

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request_with_retry(self, method: str, path: str, retry_unsafe: bool = False,
                            **kwargs) -> requests.Response:
        """
        Make request with exponential backoff on 429, 5xx and network errors.

        A 429 is always retried since the request was not processed. Network
        errors and 5xx are only retried for idempotent methods unless
        retry_unsafe is set: a timed-out POST may already have been applied.
        """
        url = self._url(path)
        kwargs.setdefault("timeout", self.timeout)
        retryable = retry_unsafe or method.upper() in self.IDEMPOTENT_METHODS

        for attempt in range(self.max_retries):
            last_attempt = attempt == self.max_retries - 1
            try:
                response = self.session.request(method, url, **kwargs)
            except requests.exceptions.RequestException as e:
                logger.error(f"{self.service_name} request failed ({method} {path}, attempt {attempt + 1}): {e}")
                if last_attempt or not retryable:
                    raise self.error_class(f"{self.service_name} request failed: {e}") from e
                self._sleep(min(self.backoff_factor ** attempt, 15))
                continue

            if response.status_code == 429:
                retry_after = response.headers.get('Retry-After')
                try:
                    wait_time = float(retry_after) if retry_after else min(self.backoff_factor ** attempt, 30)
                except ValueError:
                    wait_time = min(self.backoff_factor ** attempt, 30)
                logger.warning(f"{self.service_name} rate limited. Waiting {wait_time:.1f} seconds "
                               f"(attempt {attempt + 1}/{self.max_retries})...")
                if not last_attempt:
                    self._sleep(wait_time)
                    continue

            if response.status_code >= 400:
                logger.error(f"{self.service_name} error {response.status_code} ({method} {path}): {response.text}")
                # 4xx won't change on retry
                if response.status_code >= 500 and retryable and not last_attempt:
                    self._sleep(min(self.backoff_factor ** attempt, 15))
                    continue
                raise self.error_class(
                    f"{self.service_name} API error {response.status_code} ({method} {path})",
                    status_code=response.status_code,
                    response_text=response.text,
                )

            return response

        raise self.error_class(f"{self.service_name} max retries exceeded ({method} {path})")

    def _json(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        response = self._request_with_retry(method, path, **kwargs)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise self.error_class(f"{self.service_name} returned invalid JSON ({method} {path})") from e

    def download(self, url: str, authenticated: bool = False) -> requests.Response:
        """
        Fetch raw bytes from an arbitrary URL.

        Third-party file URLs are usually signed, so the session's auth header is
        only sent when asked for.
        """
        if authenticated:
            return self._request_with_retry("GET", url)
        try:
            response = requests.get(url, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise self.error_class(f"Download failed: {e}") from e
        if response.status_code >= 400:
            raise self.error_class(f"Download failed with status {response.status_code}",
                                   status_code=response.status_code)
        return response
