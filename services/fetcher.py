"""Fetch the latest station reading from the Ambient Weather REST API."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import httpx

from models.records import FetchOutcome
from services.retry import RetryExhaustedError, RetryPolicy, run_with_retry
from services.sync import split_top_level

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """A single fetch attempt failed (bad status or unreadable body)."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def build_device_url(base_url: str, device_id: str, api_key: str, app_key: str) -> str:
    """Assemble the fully formed "latest reading" URL for one device."""
    url = httpx.URL(base_url.rstrip("/") + "/" + device_id)
    return str(
        url.copy_merge_params({"apiKey": api_key, "applicationKey": app_key, "limit": "1"})
    )


def redact_url(url: str) -> str:
    parsed = httpx.URL(url)
    hidden = [
        (key, "***" if key in {"apiKey", "applicationKey"} else value)
        for key, value in parsed.params.multi_items()
    ]
    return str(parsed.copy_with(params=hidden))


def unwrap_payload(body: str) -> str:
    """Strip the ``[{ ... }]`` envelope, leaving the flat ``"key":value`` body."""
    text = body.strip()
    if not (text.startswith("[") and text.endswith("]")):
        raise FetchError("Response body is not a JSON array")
    inner = text[1:-1].strip()
    if not (inner.startswith("{") and inner.endswith("}")) or len(split_top_level(inner, ",")) != 1:
        raise FetchError("Response array does not wrap a single object")
    payload = inner[1:-1].strip()
    if not payload:
        raise FetchError("Response object is empty")
    return payload


class ResilientFetcher:
    """Issues one logical fetch with bounded retries against a fixed endpoint."""

    def __init__(
        self,
        url: str,
        policy: Optional[RetryPolicy] = None,
        client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.url = url
        self.policy = policy or RetryPolicy()
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)
        self._sleep = sleep

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def fetch(self) -> FetchOutcome:
        """Return the unwrapped payload, or a failure once retries are spent."""
        attempts = 0

        def attempt() -> str:
            nonlocal attempts
            attempts += 1
            return self._request_once(attempts)

        try:
            payload, _ = run_with_retry(
                attempt,
                policy=self.policy,
                description="fetch latest reading",
                retry_on=(httpx.HTTPError, FetchError),
                sleep=self._sleep,
            )
        except RetryExhaustedError as exc:
            message = str(exc.last_error) if exc.last_error is not None else str(exc)
            logger.error(
                "Giving up on fetch: %s",
                message,
                extra={"attempt": attempts, "outcome": "exhausted"},
            )
            return FetchOutcome(payload=None, attempts=attempts, error=message)

        return FetchOutcome(payload=payload, attempts=attempts)

    def _request_once(self, attempt: int) -> str:
        response = self._client.get(self.url)
        logger.info(
            "Response status %s",
            response.status_code,
            extra={"attempt": attempt, "status_code": response.status_code},
        )
        if response.status_code != httpx.codes.OK:
            raise FetchError(
                f"Received error status code {response.status_code}",
                status_code=response.status_code,
            )
        body = response.text
        logger.debug("Response body: %s", body)
        return unwrap_payload(body)


def build_fetcher(
    base_url: str,
    device_id: str,
    api_key: str,
    app_key: str,
    policy: Optional[RetryPolicy] = None,
    timeout: float = 30.0,
) -> ResilientFetcher:
    url = build_device_url(base_url, device_id, api_key, app_key)
    logger.info("Station endpoint: %s", redact_url(url))
    return ResilientFetcher(url=url, policy=policy, timeout=timeout)
