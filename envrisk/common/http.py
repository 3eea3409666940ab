"""HTTP client with timeouts, optional retries, and source-error mapping."""

from __future__ import annotations

from dataclasses import dataclass
from types import TracebackType
from typing import Any

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from envrisk.common.constants import USER_AGENT
from envrisk.common.errors import (
    MalformedResponseError,
    NetworkError,
    RetryableStatusError,
    UpstreamStatusError,
)

RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


@dataclass(frozen=True)
class TimeoutConfig:
    connect: float = 10.0
    read: float = 60.0


@dataclass(frozen=True)
class RetryConfig:
    # One attempt: a failed fetch is reported, and the caller re-runs.
    max_attempts: int = 1
    multiplier: float = 1.0
    max_wait: float = 10.0


class HttpClient:
    def __init__(
        self,
        *,
        timeout: TimeoutConfig | None = None,
        retry: RetryConfig | None = None,
        user_agent: str = USER_AGENT,
    ) -> None:
        self.timeout = timeout or TimeoutConfig()
        self.retry = retry or RetryConfig()
        self.user_agent = user_agent
        self.session = requests.Session()

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _headers(self, accept: str, headers: dict[str, str] | None) -> dict[str, str]:
        out = {"User-Agent": self.user_agent, "Accept": accept}
        if headers:
            out.update(headers)
        return out

    def _raise_for_status_or_retry(self, response: requests.Response, url: str) -> None:
        status = response.status_code
        if status in RETRYABLE_STATUS_CODES:
            raise RetryableStatusError(f"HTTP status {status} from {url}", status_code=status)
        if status >= 400:
            raise UpstreamStatusError(f"HTTP status {status} from {url}", status_code=status)

    def _send(
        self,
        url: str,
        *,
        params: dict[str, Any] | None,
        accept: str,
        headers: dict[str, str] | None,
        timeout: TimeoutConfig | None,
    ) -> requests.Response:
        req_timeout = timeout or self.timeout
        try:
            response = self.session.request(
                method="GET",
                url=url,
                params=params,
                headers=self._headers(accept, headers),
                timeout=(req_timeout.connect, req_timeout.read),
            )
        except requests.RequestException as exc:
            raise NetworkError(f"Request to {url} failed: {exc}") from exc
        self._raise_for_status_or_retry(response, url)
        return response

    def _with_retry(self, fn):
        @retry(
            stop=stop_after_attempt(self.retry.max_attempts),
            wait=wait_exponential_jitter(
                initial=self.retry.multiplier,
                max=self.retry.max_wait,
                jitter=1.0,
            ),
            retry=retry_if_exception_type(RetryableStatusError),
            reraise=True,
        )
        def _wrapped():
            return fn()

        return _wrapped()

    def get_json(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> Any:
        def _fetch() -> Any:
            response = self._send(
                url, params=params, accept="application/json", headers=headers, timeout=timeout
            )
            try:
                return response.json()
            except ValueError as exc:
                raise MalformedResponseError(f"Invalid JSON payload from {url}") from exc

        return self._with_retry(_fetch)

    def get_text(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> str:
        def _fetch() -> str:
            response = self._send(url, params=params, accept="text/csv, text/plain, */*", headers=headers, timeout=timeout)
            # Without a declared charset requests assumes ISO-8859-1 for text/*.
            if "charset" not in response.headers.get("content-type", "").lower():
                response.encoding = "utf-8"
            return response.text

        return self._with_retry(_fetch)
