"""
Retrying forwarder for outbound calls to the AI backend.

Every call gets a bounded number of attempts with a fixed wait in between.
Transport errors and non-2xx responses are retried identically; only the last
failure is surfaced to the caller.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)
from tenacity.wait import wait_base

from outreach_api.config import settings
from outreach_api.services.errors import BackendError, ForwarderError, TransportError

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """How many attempts to make and how long to wait between them."""

    max_attempts: int = 3
    wait: wait_base = field(default_factory=lambda: wait_fixed(1.0))

    @classmethod
    def fixed(cls, max_attempts: int, delay: float) -> "RetryPolicy":
        return cls(max_attempts=max_attempts, wait=wait_fixed(delay))

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls.fixed(settings.retry_max_attempts, settings.retry_delay_seconds)


@dataclass(frozen=True)
class Success:
    response: Any


@dataclass(frozen=True)
class Failure:
    reason: str
    last_error: ForwarderError


Outcome = Success | Failure


async def fold(call: Awaitable[Any]) -> Outcome:
    """Await a backend call and turn its result or ForwarderError into an Outcome."""
    try:
        return Success(await call)
    except ForwarderError as e:
        return Failure(reason=e.reason, last_error=e)


class RetryingForwarder:
    """
    POST a JSON payload to the backend, retrying per the injected policy.

    Holds no per-call state, so one instance can serve concurrent calls.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        policy: RetryPolicy | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self._client = client
        self._policy = policy or RetryPolicy()
        self._sleep = sleep

    async def post(self, path: str, payload: dict) -> dict[str, Any]:
        """Return the parsed payload of the first successful attempt, or raise the last error."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._policy.max_attempts),
            wait=self._policy.wait,
            retry=retry_if_exception_type((TransportError, BackendError)),
            before_sleep=_log_retry(path),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._post_once(path, payload)
        except ForwarderError as e:
            logger.error(
                "POST %s failed after %d attempts: %s",
                path,
                self._policy.max_attempts,
                e,
            )
            raise

    async def attempt(self, path: str, payload: dict) -> Outcome:
        """Same as post(), but folds the result into an Outcome instead of raising."""
        return await fold(self.post(path, payload))

    async def _post_once(self, path: str, payload: dict) -> dict[str, Any]:
        try:
            response = await self._client.post(
                path,
                json=payload,
                headers={"Accept": "application/json"},
            )
        except httpx.RequestError as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            raise BackendError(
                f"Backend API error: {response.status_code} "
                f"{response.reason_phrase} - {response.text}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise BackendError(
                f"Backend returned a malformed body: {e}",
                status_code=response.status_code,
            ) from e
        if not isinstance(data, dict):
            raise BackendError(
                "Backend payload must be a JSON object.",
                status_code=response.status_code,
            )
        return data


def _log_retry(path: str) -> Callable[[RetryCallState], None]:
    def log(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        wait = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            "POST %s attempt %d failed (%s); retrying in %.1fs",
            path,
            retry_state.attempt_number,
            error,
            wait,
        )

    return log
