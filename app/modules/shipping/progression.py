"""
Shipment progression: the ordered fulfillment steps for one order.

create -> assign AWB -> pickup -> label -> invoice -> manifest, plus track.

Each step is independent and idempotent:
- a cancelled order is rejected before anything else
- the step's precondition field must already be on the order
- a step whose own field is already recorded is skipped, no carrier call
- success writes only that step's field(s); nothing is ever cleared

A failed step leaves earlier fields in place, so it can be retried on its
own. The caller owns the DB session and commits after a successful step.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

from app.core.exceptions import (
    CarrierApiError,
    OrderCancelledError,
    ShipmentPreconditionError,
    ShipmentValidationError,
)
from app.core.utils import utcnow
from app.modules.shipping.client import ShiprocketClient
from app.modules.shipping.payload import map_order_to_payload
from app.modules.shipping.responses import extract_field
from app.modules.shipping.validation import missing_shipping_fields, validate_payload

logger = logging.getLogger(__name__)


class FulfillmentStep(str, Enum):
    CREATE_SHIPMENT = "create_shipment"
    ASSIGN_AWB = "assign_awb"
    REQUEST_PICKUP = "request_pickup"
    GENERATE_LABEL = "generate_label"
    GENERATE_INVOICE = "generate_invoice"
    GENERATE_MANIFEST = "generate_manifest"
    TRACK = "track"


class ShipmentStage(str, Enum):
    NOT_CREATED = "not_created"
    ORDER_CREATED = "order_created"
    AWB_ASSIGNED = "awb_assigned"
    PICKUP_GENERATED = "pickup_generated"
    LABEL_READY = "label_ready"
    INVOICE_READY = "invoice_ready"
    MANIFEST_READY = "manifest_ready"


# Furthest field present wins
_STAGE_FIELDS = (
    ("manifest_url", ShipmentStage.MANIFEST_READY),
    ("invoice_url", ShipmentStage.INVOICE_READY),
    ("label_url", ShipmentStage.LABEL_READY),
    ("pickup_requested_at", ShipmentStage.PICKUP_GENERATED),
    ("awb_code", ShipmentStage.AWB_ASSIGNED),
    ("shipment_id", ShipmentStage.ORDER_CREATED),
)

CANCELLED_STATUSES = ("cancelled", "canceled")

MANIFEST_EXISTS_MARKER = "already"

TRACKING_FIELDS = (
    "shipment_id",
    "awb_code",
    "courier_name",
    "label_url",
    "invoice_url",
    "manifest_url",
    "pickup_requested_at",
)


def is_cancelled(order: Any) -> bool:
    return str(getattr(order, "status", None) or "").strip().lower() in CANCELLED_STATUSES


def is_manifest_already_generated(error: CarrierApiError) -> bool:
    return MANIFEST_EXISTS_MARKER in str(error.message).lower()


def shipment_stage(order: Any) -> ShipmentStage:
    for name, stage in _STAGE_FIELDS:
        if getattr(order, name, None):
            return stage
    return ShipmentStage.NOT_CREATED


def _serialize(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def tracking_snapshot(order: Any) -> Dict[str, Any]:
    return {name: _serialize(getattr(order, name, None)) for name in TRACKING_FIELDS}


@dataclass
class StepResult:
    step: FulfillmentStep
    fields: Dict[str, Any] = field(default_factory=dict)
    carrier_response: Optional[Dict[str, Any]] = None
    skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step.value,
            "fields": {name: _serialize(value) for name, value in self.fields.items()},
            "skipped": self.skipped,
            "carrier_response": self.carrier_response,
        }


def _order_ref(order: Any) -> str:
    return str(getattr(order, "order_number", None) or getattr(order, "id", "?"))


class ShipmentProgressionTracker:
    def __init__(
        self,
        client: ShiprocketClient,
        pickup_location: str,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.client = client
        self.pickup_location = pickup_location
        self._clock = clock

    # ------------------------------------------------------------------ gates

    def _reject_cancelled(self, order: Any, step: FulfillmentStep) -> None:
        if is_cancelled(order):
            raise OrderCancelledError(
                f"Order {_order_ref(order)} is cancelled",
                step=step.value,
            )

    def _require(self, order: Any, step: FulfillmentStep, name: str) -> Any:
        value = getattr(order, name, None)
        if not value:
            raise ShipmentPreconditionError(
                f"Order {_order_ref(order)} has no {name}; cannot {step.value.replace('_', ' ')}",
                step=step.value,
                missing_field=name,
            )
        return value

    def _skip(self, order: Any, step: FulfillmentStep, *names: str) -> Optional[StepResult]:
        if getattr(order, names[0], None):
            logger.info(f"[SHIPROCKET] {step.value} already done for order {_order_ref(order)}, skipping")
            return StepResult(
                step=step,
                fields={name: getattr(order, name, None) for name in names},
                skipped=True,
            )
        return None

    # ------------------------------------------------------------------ steps

    async def create_shipment(self, order: Any) -> StepResult:
        step = FulfillmentStep.CREATE_SHIPMENT
        self._reject_cancelled(order, step)
        skipped = self._skip(order, step, "shipment_id")
        if skipped:
            return skipped

        missing = missing_shipping_fields(order)
        if missing:
            raise ShipmentValidationError(
                f"Order {_order_ref(order)} is missing shipping details",
                violations=[f"Missing/empty: {name}" for name in missing],
            )

        payload = map_order_to_payload(order, self.pickup_location, now=self._clock())
        violations = validate_payload(payload)
        if violations:
            logger.warning(f"[SHIPROCKET] Payload for order {_order_ref(order)} rejected: {violations}")
            raise ShipmentValidationError(
                f"Order {_order_ref(order)} cannot be sent to the carrier",
                violations=violations,
            )

        body = await self.client.create_adhoc_order(payload)
        shipment_id = extract_field(body, "shipment_id")
        if shipment_id is None:
            raise CarrierApiError(
                "Shiprocket did not return shipment_id",
                code="CARRIER_FIELD_MISSING",
                body=body,
            )

        order.shipment_id = str(shipment_id)
        logger.info(f"[SHIPROCKET] Order {_order_ref(order)} created as shipment {order.shipment_id}")
        return StepResult(step=step, fields={"shipment_id": order.shipment_id}, carrier_response=body)

    async def assign_awb(self, order: Any, courier_id: Optional[int] = None) -> StepResult:
        step = FulfillmentStep.ASSIGN_AWB
        self._reject_cancelled(order, step)
        shipment_id = self._require(order, step, "shipment_id")
        skipped = self._skip(order, step, "awb_code", "courier_name")
        if skipped:
            return skipped

        body = await self.client.assign_awb(shipment_id, courier_id=courier_id)
        awb = extract_field(body, "awb_code")
        if awb is None:
            reason = extract_field(body, "awb_assign_error") or extract_field(body, "message")
            raise CarrierApiError(
                f"Shiprocket did not return awb_code{': ' + str(reason) if reason else ''}",
                code="CARRIER_FIELD_MISSING",
                body=body,
            )

        order.awb_code = str(awb).strip().upper()
        courier = extract_field(body, "courier_name")
        if courier is not None:
            order.courier_name = str(courier)
        logger.info(f"[SHIPROCKET] Shipment {shipment_id} assigned AWB {order.awb_code} ({order.courier_name})")
        return StepResult(
            step=step,
            fields={"awb_code": order.awb_code, "courier_name": order.courier_name},
            carrier_response=body,
        )

    async def request_pickup(self, order: Any) -> StepResult:
        step = FulfillmentStep.REQUEST_PICKUP
        self._reject_cancelled(order, step)
        shipment_id = self._require(order, step, "shipment_id")
        skipped = self._skip(order, step, "pickup_requested_at")
        if skipped:
            return skipped

        body = await self.client.generate_pickup([shipment_id])
        order.pickup_requested_at = self._clock()
        logger.info(f"[SHIPROCKET] Pickup requested for shipment {shipment_id}")
        return StepResult(
            step=step,
            fields={"pickup_requested_at": order.pickup_requested_at},
            carrier_response=body,
        )

    async def _document_step(self, order: Any, step: FulfillmentStep, url_field: str, fetch) -> StepResult:
        self._reject_cancelled(order, step)
        shipment_id = self._require(order, step, "shipment_id")
        skipped = self._skip(order, step, url_field)
        if skipped:
            return skipped

        body = await fetch(shipment_id)
        url = extract_field(body, url_field)
        if url is None:
            # Soft success: document may still be rendering on the carrier side
            logger.warning(f"[SHIPROCKET] {step.value} for shipment {shipment_id} returned no {url_field}")
            return StepResult(step=step, fields={url_field: None}, carrier_response=body)

        setattr(order, url_field, str(url))
        return StepResult(step=step, fields={url_field: str(url)}, carrier_response=body)

    async def generate_label(self, order: Any) -> StepResult:
        return await self._document_step(
            order,
            FulfillmentStep.GENERATE_LABEL,
            "label_url",
            lambda shipment_id: self.client.generate_label([shipment_id]),
        )

    async def generate_invoice(self, order: Any) -> StepResult:
        return await self._document_step(
            order,
            FulfillmentStep.GENERATE_INVOICE,
            "invoice_url",
            lambda shipment_id: self.client.print_invoice([shipment_id]),
        )

    async def generate_manifest(self, order: Any) -> StepResult:
        async def generate_then_print(shipment_id):
            try:
                await self.client.generate_manifest([shipment_id])
            except CarrierApiError as e:
                # A retry after a URL-less print finds the manifest already generated
                if not is_manifest_already_generated(e):
                    raise
                logger.info(f"[SHIPROCKET] Manifest for shipment {shipment_id} already generated, printing it")
            return await self.client.print_manifest([shipment_id])

        return await self._document_step(
            order,
            FulfillmentStep.GENERATE_MANIFEST,
            "manifest_url",
            generate_then_print,
        )

    async def track(self, order: Any) -> StepResult:
        """Read-only: returns carrier tracking data, writes nothing."""
        step = FulfillmentStep.TRACK
        self._reject_cancelled(order, step)
        awb = self._require(order, step, "awb_code")
        body = await self.client.track_by_awb(awb)
        return StepResult(step=step, fields={"awb_code": awb}, carrier_response=body)
