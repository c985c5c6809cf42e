"""
Shiprocket API client.

Thin: one method per carrier endpoint, each a single RequestGateway.call.
Token handling, retries and error normalization live in the gateway and
TokenManager so no endpoint re-implements them.
"""
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from app.core.config import settings
from app.modules.shipping.gateway import RequestGateway
from app.modules.shipping.token_manager import TokenManager

logger = logging.getLogger(__name__)

SERVICEABILITY_PATH = "/v1/external/courier/serviceability/"
CREATE_ADHOC_ORDER_PATH = "/v1/external/orders/create/adhoc"
ASSIGN_AWB_PATH = "/v1/external/courier/assign/awb"
GENERATE_PICKUP_PATH = "/v1/external/courier/generate/pickup"
GENERATE_LABEL_PATH = "/v1/external/courier/generate/label"
PRINT_INVOICE_PATH = "/v1/external/orders/print/invoice"
GENERATE_MANIFEST_PATH = "/v1/external/manifests/generate"
PRINT_MANIFEST_PATH = "/v1/external/manifests/print"
TRACK_AWB_PATH = "/v1/external/courier/track/awb/{awb}"


def carrier_id(value: Any) -> Any:
    """Shiprocket ids are numeric; we store them as strings."""
    text = str(value).strip()
    return int(text) if text.isdigit() else text


class ShiprocketClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        email: Optional[str] = None,
        password: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.SHIPROCKET_BASE_URL).rstrip("/")
        self._http_client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=settings.SHIPROCKET_REQUEST_TIMEOUT_SECONDS,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            transport=transport,
        )
        self.tokens = TokenManager(
            self._http_client,
            email=email if email is not None else settings.SHIPROCKET_EMAIL,
            password=password if password is not None else settings.SHIPROCKET_PASSWORD,
            validity_seconds=settings.SHIPROCKET_TOKEN_TTL_HOURS * 3600,
            refresh_margin_seconds=settings.SHIPROCKET_TOKEN_REFRESH_MARGIN_SECONDS,
            cooldown_seconds=settings.SHIPROCKET_AUTH_COOLDOWN_SECONDS,
            lockout_wait_seconds=settings.SHIPROCKET_LOCKOUT_WAIT_MINUTES * 60,
            auth_timeout=settings.SHIPROCKET_AUTH_TIMEOUT_SECONDS,
        )
        self.gateway = RequestGateway(
            self._http_client,
            self.tokens,
            request_timeout=settings.SHIPROCKET_REQUEST_TIMEOUT_SECONDS,
        )

    async def close(self):
        """Close HTTP client."""
        await self._http_client.aclose()

    async def serviceability(
        self,
        pickup_postcode: str,
        delivery_postcode: str,
        weight: float = 0.5,
        cod: int = 0,
        declared_value: float = 0,
        mode: str = "Surface",
    ) -> Dict[str, Any]:
        params = {
            "pickup_postcode": pickup_postcode,
            "delivery_postcode": delivery_postcode,
            "weight": weight,
            "cod": 1 if cod else 0,
            "declared_value": declared_value,
            "mode": mode,
        }
        return await self.gateway.call("GET", SERVICEABILITY_PATH, params=params)

    async def create_adhoc_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.gateway.call("POST", CREATE_ADHOC_ORDER_PATH, json=payload)

    async def assign_awb(self, shipment_id: Any, courier_id: Optional[int] = None) -> Dict[str, Any]:
        body = {"shipment_id": carrier_id(shipment_id)}
        if courier_id is not None:
            body["courier_id"] = courier_id
        return await self.gateway.call("POST", ASSIGN_AWB_PATH, json=body)

    async def generate_pickup(self, shipment_ids: List[Any]) -> Dict[str, Any]:
        return await self.gateway.call(
            "POST", GENERATE_PICKUP_PATH, json={"shipment_id": [carrier_id(s) for s in shipment_ids]}
        )

    async def generate_label(self, shipment_ids: List[Any]) -> Dict[str, Any]:
        return await self.gateway.call(
            "POST", GENERATE_LABEL_PATH, json={"shipment_id": [carrier_id(s) for s in shipment_ids]}
        )

    async def print_invoice(self, order_ids: List[Any]) -> Dict[str, Any]:
        return await self.gateway.call(
            "POST", PRINT_INVOICE_PATH, json={"ids": [carrier_id(i) for i in order_ids]}
        )

    async def generate_manifest(self, shipment_ids: List[Any]) -> Dict[str, Any]:
        return await self.gateway.call(
            "POST", GENERATE_MANIFEST_PATH, json={"shipment_id": [carrier_id(s) for s in shipment_ids]}
        )

    async def print_manifest(self, shipment_ids: List[Any]) -> Dict[str, Any]:
        return await self.gateway.call(
            "POST", PRINT_MANIFEST_PATH, json={"shipment_id": [carrier_id(s) for s in shipment_ids]}
        )

    async def track_by_awb(self, awb: str) -> Dict[str, Any]:
        return await self.gateway.call("GET", TRACK_AWB_PATH.format(awb=quote(str(awb).strip(), safe="")))


# Process-wide client; one client means one TokenManager and one login at a time
_client: Optional[ShiprocketClient] = None


def get_shiprocket_client() -> ShiprocketClient:
    global _client
    if _client is None:
        if not settings.shiprocket_configured:
            logger.warning("[SHIPROCKET] Credentials not configured; carrier calls will fail until they are set")
        _client = ShiprocketClient()
    return _client


async def close_shiprocket_client() -> None:
    global _client
    if _client is not None:
        await _client.close()
        _client = None
