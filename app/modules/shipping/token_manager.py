"""
Shiprocket session token management.

Shiprocket issues a bearer token from email/password login and locks the
account after repeated failed logins. Every carrier call in the process goes
through one TokenManager, which guarantees:

- a cached token is reused until it is within the refresh margin of expiry
- at most one login request is in flight; concurrent callers share its result
- after a failed login, further attempts fail fast until the cooldown passes
- the carrier's lockout message becomes a CarrierLockoutError with a wait hint
"""
import asyncio
import logging
import math
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import httpx

from app.core.exceptions import (
    CarrierAuthenticationError,
    CarrierBackoffError,
    CarrierLockoutError,
    CarrierTransportError,
)
from app.core.redaction import mask_email, mask_secret, sanitize_for_logging

logger = logging.getLogger(__name__)

LOGIN_PATH = "/v1/external/auth/login"

LOCKOUT_MARKER = "too many failed login attempts"
_WAIT_PATTERN = re.compile(r"(\d+)\s*(hours?|hrs?|minutes?|mins?)\b", re.IGNORECASE)


class TokenState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    EXPIRING = "expiring"


@dataclass
class CarrierSession:
    """Token plus its timing. Times are clock() readings, not wall time."""
    token: Optional[str] = None
    issued_at: Optional[float] = None
    expires_at: Optional[float] = None
    cooldown_until: Optional[float] = None
    last_failure_at: Optional[float] = None


def is_lockout_message(text: Optional[str]) -> bool:
    return bool(text) and LOCKOUT_MARKER in text.lower()


def parse_lockout_wait(text: Optional[str]) -> Optional[int]:
    """Seconds named in a lockout message ("try again after 30 minutes"), if any."""
    if not text:
        return None
    match = _WAIT_PATTERN.search(text)
    if not match:
        return None
    amount = int(match.group(1))
    unit = match.group(2).lower()
    if unit.startswith("h"):
        return amount * 3600
    return amount * 60


class TokenManager:
    """Owns the one CarrierSession of the process."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        email: str,
        password: str,
        validity_seconds: float = 216 * 3600,
        refresh_margin_seconds: float = 3600,
        cooldown_seconds: float = 60,
        lockout_wait_seconds: float = 30 * 60,
        auth_timeout: float = 15.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._http = http_client
        self._email = email
        self._password = password
        self.validity_seconds = validity_seconds
        self.refresh_margin_seconds = refresh_margin_seconds
        self.cooldown_seconds = cooldown_seconds
        self.lockout_wait_seconds = lockout_wait_seconds
        self.auth_timeout = auth_timeout
        self._clock = clock
        self._session = CarrierSession()
        self._inflight: Optional[asyncio.Task] = None

    @property
    def session(self) -> CarrierSession:
        return self._session

    @property
    def state(self) -> TokenState:
        if self._inflight is not None:
            return TokenState.AUTHENTICATING
        if not self._session.token:
            return TokenState.UNAUTHENTICATED
        if self._usable_token() is None:
            return TokenState.EXPIRING
        return TokenState.AUTHENTICATED

    def _usable_token(self) -> Optional[str]:
        session = self._session
        if not session.token or session.expires_at is None:
            return None
        if self._clock() < session.expires_at - self.refresh_margin_seconds:
            return session.token
        return None

    async def authenticate(self) -> str:
        """
        Return a usable bearer token, logging in only when needed.

        Raises:
            CarrierAuthenticationError: credentials missing or rejected
            CarrierLockoutError: carrier locked the account
            CarrierBackoffError: last login failed within the cooldown window
            CarrierTransportError: login request timed out or failed to connect
        """
        token = self._usable_token()
        if token:
            return token

        # No await between the check and the assignment, so only one task is created
        if self._inflight is None:
            if not self._email or not self._password:
                raise CarrierAuthenticationError(
                    "Shiprocket credentials are not configured",
                    code="CARRIER_CREDENTIALS_MISSING",
                )
            now = self._clock()
            cooldown_until = self._session.cooldown_until
            if cooldown_until is not None and now < cooldown_until:
                retry_after = max(1, math.ceil(cooldown_until - now))
                logger.warning(f"[SHIPROCKET] Login suppressed, cooling down for {retry_after}s")
                raise CarrierBackoffError(
                    f"Carrier login failed recently; retry in {retry_after} seconds",
                    retry_after_seconds=retry_after,
                )
            self._inflight = asyncio.create_task(self._login())

        # shield: a waiter that gives up must not cancel the login for the others
        return await asyncio.shield(self._inflight)

    def invalidate(self, rejected_token: Optional[str]) -> bool:
        """
        Drop the cached token if it is still the one the carrier rejected.

        Returns True when the token was dropped. A False return means another
        caller already replaced it, so no extra login is needed.
        """
        if rejected_token and self._session.token == rejected_token:
            logger.info(f"[SHIPROCKET] Token {mask_secret(rejected_token)} rejected by carrier, dropping it")
            self._session.token = None
            self._session.expires_at = None
            return True
        return False

    async def _login(self) -> str:
        try:
            return await self._request_token()
        finally:
            self._inflight = None

    async def _request_token(self) -> str:
        logger.info(f"[SHIPROCKET] Logging in as {mask_email(self._email)}")
        try:
            response = await self._http.post(
                LOGIN_PATH,
                json={"email": self._email, "password": self._password},
                timeout=self.auth_timeout,
            )
        except httpx.TimeoutException as e:
            self._record_failure()
            logger.error(f"[SHIPROCKET] Login timed out after {self.auth_timeout}s")
            raise CarrierTransportError(f"Carrier login timed out: {e}", timeout=True)
        except httpx.RequestError as e:
            self._record_failure()
            logger.error(f"[SHIPROCKET] Login request failed: {e}")
            raise CarrierTransportError(f"Network error during carrier login: {e}")

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if response.status_code >= 400:
            message = str(data.get("message") or response.text or f"HTTP {response.status_code}")
            self._record_failure()
            if is_lockout_message(message):
                wait = self.register_lockout(message)
                logger.error(f"[SHIPROCKET] Account locked by carrier: {sanitize_for_logging(message)}")
                raise CarrierLockoutError(
                    "Shiprocket locked the account after too many failed login attempts",
                    retry_after_seconds=wait,
                    details={"carrier_message": message},
                )
            logger.error(f"[SHIPROCKET] Login rejected: {response.status_code} - {sanitize_for_logging(message)}")
            raise CarrierAuthenticationError(
                f"Shiprocket login failed: {message}",
                details={"status_code": response.status_code},
            )

        token = data.get("token") or data.get("access_token")
        if not token:
            self._record_failure()
            logger.error("[SHIPROCKET] Login response carried no token")
            raise CarrierAuthenticationError("Shiprocket login failed: no token returned")

        now = self._clock()
        self._session.token = token
        self._session.issued_at = now
        self._session.expires_at = now + self.validity_seconds
        self._session.cooldown_until = None
        logger.info(
            f"[SHIPROCKET] Token {mask_secret(token)} obtained, "
            f"valid for {self.validity_seconds / 3600:.0f}h"
        )
        return token

    def register_lockout(self, message: Optional[str]) -> int:
        """Hold off logins for the wait the carrier named, or the configured default."""
        wait = parse_lockout_wait(message) or int(self.lockout_wait_seconds)
        self._session.cooldown_until = self._clock() + wait
        return wait

    def _record_failure(self) -> None:
        now = self._clock()
        self._session.last_failure_at = now
        self._session.cooldown_until = now + self.cooldown_seconds
