"""
Thread-safe token provider base with refresh coordination and health resets.

Every authentication strategy subclasses BaseTokenProvider and implements
fetch_token(). The base class owns caching, the single-refresher guard,
retry with backoff, fallback to a still-valid token and long-process resets.

Thread Safety:
    One Condition guards one ProviderHealthState. The network fetch runs
    with the lock released; concurrent callers wait on the condition for
    the in-flight refresh instead of issuing their own.

Example:
    >>> provider = ClientCredentialTokenProvider(...)
    >>> token = provider.get_token()  # cached until 5 minutes before expiry
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Dict

from azure.core.credentials import AccessToken

from core.auth.models import (
    DEFAULT_TOKEN_LIFETIME_SECONDS,
    MAX_PROVIDER_AGE_SECONDS,
    MAX_REFRESH_CYCLES,
    REFRESH_WAIT_TIMEOUT_SECONDS,
    TOKEN_EXPIRY_BUFFER_SECONDS,
    ProviderHealthState,
    Token,
)
from core.errors.classifiers import classify_auth_error
from core.errors.exceptions import AuthenticationError
from core.resilience.retry import TOKEN_RETRY, RetryConfig, retry_call
from core.types import ErrorCategory

logger = logging.getLogger(__name__)


class BaseTokenProvider(ABC):
    """
    Abstract base class for bearer token providers.

    Attributes:
        provider_name: Strategy name used in logs and diagnostics
        scope: OAuth scope requested from the backend
    """

    def __init__(
        self,
        provider_name: str,
        scope: str,
        retry_config: RetryConfig | None = None,
        expiry_buffer_seconds: float = TOKEN_EXPIRY_BUFFER_SECONDS,
        wait_timeout_seconds: float = REFRESH_WAIT_TIMEOUT_SECONDS,
        max_age_seconds: float = MAX_PROVIDER_AGE_SECONDS,
        max_refresh_cycles: int = MAX_REFRESH_CYCLES,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.provider_name = provider_name
        self.scope = scope
        self._retry_config = retry_config or TOKEN_RETRY
        self._expiry_buffer = expiry_buffer_seconds
        self._wait_timeout = wait_timeout_seconds
        self._max_age = max_age_seconds
        self._max_refresh_cycles = max_refresh_cycles
        self._clock = clock
        self._sleep = sleep
        self._credential: Any = None

        self._cond = threading.Condition(threading.Lock())
        self._state = ProviderHealthState(creation_time=clock())

    @abstractmethod
    def fetch_token(self) -> AccessToken:
        """
        Fetch a new token from the backend.

        Returns:
            AccessToken(token, expires_on). expires_on of 0 means the backend
            did not report a lifetime.
        """
        pass

    def get_token(self) -> str:
        """
        Return a valid bearer token, refreshing it if needed.

        Raises:
            AuthenticationError: If refresh fails and no unexpired token is cached
        """
        with self._cond:
            self._check_health_locked()
            token = self._state.token
            if token is not None and token.is_fresh(self._expiry_buffer, self._clock()):
                return token.access_token

            if self._state.refresh_in_progress:
                token = self._wait_for_refresh_locked()
                if token is not None:
                    return token.access_token

            self._state.refresh_in_progress = True

        try:
            new_token = self._refresh()
        except AuthenticationError as e:
            with self._cond:
                self._finish_refresh_locked(None)
                fallback = self._state.token
                now = self._clock()
                if fallback is not None and fallback.remaining(now) > 0:
                    logger.warning(
                        "Token refresh failed for %s, using cached token until expiry",
                        self.provider_name,
                        extra={
                            "provider": self.provider_name,
                            "expires_in_seconds": fallback.remaining(now),
                            "error_message": str(e)[:200],
                        },
                    )
                    return fallback.access_token
            raise
        except BaseException:
            with self._cond:
                self._finish_refresh_locked(None)
            raise

        with self._cond:
            self._finish_refresh_locked(new_token)
        return new_token.access_token

    def _wait_for_refresh_locked(self) -> Token | None:
        """Wait for another caller's refresh; None means refresh ourselves."""
        deadline = time.monotonic() + self._wait_timeout
        while self._state.refresh_in_progress:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.warning(
                    "Timed out waiting for in-flight token refresh for %s, refreshing",
                    self.provider_name,
                    extra={"provider": self.provider_name},
                )
                return None
            self._cond.wait(remaining)

        token = self._state.token
        if token is not None and token.is_fresh(self._expiry_buffer, self._clock()):
            return token
        return None

    def _finish_refresh_locked(self, token: Token | None) -> None:
        now = self._clock()
        state = self._state
        if token is not None:
            state.token = token
            state.refresh_count += 1
            state.consecutive_failures = 0
            state.last_successful_refresh = now
            logger.info(
                "Token refreshed for %s",
                self.provider_name,
                extra={
                    "provider": self.provider_name,
                    "expires_in_seconds": token.remaining(now),
                    "refresh_count": state.refresh_count,
                },
            )
        else:
            state.consecutive_failures += 1
            state.last_failure_time = now
        state.refresh_in_progress = False
        self._cond.notify_all()

    def _refresh(self) -> Token:
        access = retry_call(
            self._fetch_classified,
            config=self._retry_config,
            operation=f"{self.provider_name}.fetch_token",
            sleep=self._sleep,
        )
        now = self._clock()
        expires_on = float(access.expires_on or 0)
        if expires_on <= now:
            expires_on = now + DEFAULT_TOKEN_LIFETIME_SECONDS
        return Token(access_token=access.token, expires_on=expires_on)

    def _fetch_classified(self) -> AccessToken:
        try:
            access = self.fetch_token()
        except Exception as e:
            raise classify_auth_error(e, self.provider_name) from e

        if access is None or not access.token:
            raise AuthenticationError(
                f"Empty token returned by {self.provider_name}",
                context={"provider": self.provider_name},
                category=ErrorCategory.TRANSIENT,
            )
        return access

    def _check_health_locked(self) -> None:
        """Reset all state when the provider is too old or has cycled too often."""
        state = self._state
        if state.refresh_in_progress:
            return

        now = self._clock()
        age = now - state.creation_time
        if age > self._max_age:
            reason = f"provider age {age / 3600:.1f}h exceeds {self._max_age / 3600:.1f}h"
        elif state.refresh_count > self._max_refresh_cycles:
            reason = f"{state.refresh_count} refresh cycles exceeds {self._max_refresh_cycles}"
        else:
            return

        logger.warning(
            "Resetting token provider state for %s: %s",
            self.provider_name,
            reason,
            extra={"provider": self.provider_name, "refresh_count": state.refresh_count},
        )
        self._state = ProviderHealthState(creation_time=now)

    def get_diagnostics(self) -> Dict[str, Any]:
        """Snapshot of provider health for troubleshooting."""
        with self._cond:
            state = self._state
            now = self._clock()
            return {
                "provider": self.provider_name,
                "scope": self.scope,
                "token_cached": state.token is not None,
                "expires_in_seconds": state.token.remaining(now) if state.token else None,
                "refresh_in_progress": state.refresh_in_progress,
                "refresh_count": state.refresh_count,
                "consecutive_failures": state.consecutive_failures,
                "last_failure_time": state.last_failure_time,
                "last_successful_refresh": state.last_successful_refresh,
                "age_hours": (now - state.creation_time) / 3600,
            }

    def close(self) -> None:
        """Release the underlying credential, if any."""
        credential = self._credential
        self._credential = None
        if credential is not None and hasattr(credential, "close"):
            credential.close()


__all__ = ["BaseTokenProvider"]
