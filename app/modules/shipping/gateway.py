"""
Request gateway for authenticated Shiprocket calls.

One policy for every endpoint: inject the bearer token, tag the call with a
correlation id, re-login once on 401/403 and retry once, then normalize
whatever comes back into a dict or a ShippingError.
"""
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from app.core.exceptions import (
    CarrierApiError,
    CarrierAuthenticationError,
    CarrierLockoutError,
    CarrierTransportError,
)
from app.core.redaction import mask_headers, mask_payload, sanitize_for_logging
from app.modules.shipping.token_manager import (
    TokenManager,
    is_lockout_message,
)

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
AUTH_REJECTED_STATUSES = (401, 403)


def new_correlation_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass
class CorrelationContext:
    correlation_id: str
    method: str
    path: str
    started_at: float = field(default_factory=time.monotonic)

    @property
    def tag(self) -> str:
        return f"[SHIPROCKET][{self.correlation_id}]"

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)


def error_message(body: Any, text: str, status_code: int) -> str:
    """Pull a readable message out of a carrier error body."""
    if isinstance(body, dict):
        message = body.get("message")
        errors = body.get("errors")
        parts = []
        if message:
            parts.append(str(message))
        if isinstance(errors, dict):
            for name, problems in errors.items():
                if isinstance(problems, list):
                    problems = ", ".join(str(p) for p in problems)
                parts.append(f"{name}: {problems}")
        elif isinstance(errors, list):
            parts.extend(str(e) for e in errors)
        elif errors:
            parts.append(str(errors))
        if parts:
            return "; ".join(parts)
    if text and text.strip():
        return text.strip()[:300]
    return f"Carrier returned HTTP {status_code}"


class RequestGateway:
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        token_manager: TokenManager,
        request_timeout: float = 30.0,
    ):
        self._http = http_client
        self._tokens = token_manager
        self.request_timeout = request_timeout

    async def call(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> Dict[str, Any]:
        """
        Make one logical carrier call.

        At most two HTTP requests are sent: the original and, after a 401/403,
        exactly one retry with a freshly obtained token.
        """
        ctx = CorrelationContext(new_correlation_id(), method.upper(), path)

        token = await self._tokens.authenticate()
        response = await self._send(ctx, token, params, json)

        if response.status_code in AUTH_REJECTED_STATUSES:
            logger.warning(f"{ctx.tag} Carrier answered {response.status_code}, re-authenticating once")
            self._tokens.invalidate(token)
            token = await self._tokens.authenticate()
            response = await self._send(ctx, token, params, json)
            if response.status_code in AUTH_REJECTED_STATUSES:
                logger.error(f"{ctx.tag} Carrier rejected the refreshed token ({response.status_code})")
                raise CarrierAuthenticationError(
                    "Shiprocket rejected the request after re-authentication",
                    details={"status_code": response.status_code, "correlation_id": ctx.correlation_id},
                )

        return self._handle_response(ctx, response)

    async def _send(
        self,
        ctx: CorrelationContext,
        token: str,
        params: Optional[Dict[str, Any]],
        json: Optional[Any],
    ) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {token}",
            CORRELATION_HEADER: ctx.correlation_id,
        }
        logger.info(f"{ctx.tag} -> {ctx.method} {ctx.path}")
        logger.debug(
            f"{ctx.tag} headers={mask_headers(headers)} params={params} body={mask_payload(json)}"
        )

        try:
            response = await self._http.request(
                ctx.method,
                ctx.path,
                params=params,
                json=json,
                headers=headers,
                timeout=self.request_timeout,
            )
        except httpx.TimeoutException as e:
            logger.error(f"{ctx.tag} Timed out after {ctx.elapsed_ms()}ms: {e}")
            raise CarrierTransportError(
                f"Carrier request timed out: {ctx.method} {ctx.path}",
                timeout=True,
                details={"correlation_id": ctx.correlation_id},
            )
        except httpx.RequestError as e:
            logger.error(f"{ctx.tag} Request failed: {e}")
            raise CarrierTransportError(
                f"Network error calling carrier: {e}",
                details={"correlation_id": ctx.correlation_id},
            )

        logger.info(f"{ctx.tag} <- {response.status_code} in {ctx.elapsed_ms()}ms")
        return response

    def _handle_response(self, ctx: CorrelationContext, response: httpx.Response) -> Dict[str, Any]:
        text = response.text or ""
        try:
            body = response.json() if text.strip() else None
        except ValueError:
            body = None

        if response.status_code >= 400:
            message = error_message(body, text, response.status_code)
            logger.error(f"{ctx.tag} Carrier error {response.status_code}: {sanitize_for_logging(message)}")

            if response.status_code == 400 and is_lockout_message(message):
                wait = self._tokens.register_lockout(message)
                raise CarrierLockoutError(
                    "Shiprocket locked the account after too many failed login attempts",
                    retry_after_seconds=wait,
                    details={"carrier_message": message, "correlation_id": ctx.correlation_id},
                )

            raise CarrierApiError(
                message,
                status_code=response.status_code,
                body=body if body is not None else text[:500],
                details={"correlation_id": ctx.correlation_id},
            )

        if not text.strip():
            return {}
        if body is None:
            return {"raw": text}
        if not isinstance(body, dict):
            return {"data": body}
        return body
