"""
Shipping Module

Shiprocket fulfillment for storefront orders:
- TokenManager: one carrier session per process, single-flight login
- RequestGateway: token injection, correlation ids, one re-auth retry
- map_order_to_payload / validate_payload: order -> adhoc order body
- ShipmentProgressionTracker: idempotent fulfillment steps
"""
from app.modules.shipping.client import (
    ShiprocketClient,
    get_shiprocket_client,
    close_shiprocket_client,
)
from app.modules.shipping.gateway import RequestGateway, CorrelationContext
from app.modules.shipping.payload import map_order_to_payload
from app.modules.shipping.progression import (
    FulfillmentStep,
    ShipmentProgressionTracker,
    ShipmentStage,
    StepResult,
    shipment_stage,
)
from app.modules.shipping.responses import extract_field
from app.modules.shipping.token_manager import TokenManager, TokenState, CarrierSession
from app.modules.shipping.validation import missing_shipping_fields, validate_payload

__all__ = [
    "ShiprocketClient",
    "get_shiprocket_client",
    "close_shiprocket_client",
    "RequestGateway",
    "CorrelationContext",
    "map_order_to_payload",
    "FulfillmentStep",
    "ShipmentProgressionTracker",
    "ShipmentStage",
    "StepResult",
    "shipment_stage",
    "extract_field",
    "TokenManager",
    "TokenState",
    "CarrierSession",
    "missing_shipping_fields",
    "validate_payload",
]
