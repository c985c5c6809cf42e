"""
Shipment Routes

Admin endpoints that move an order through Shiprocket fulfillment, one
step per call, plus a public serviceability check.

Every response is {"ok": true, "data": ...}; failures are rendered as
{"ok": false, "error": {...}} by the ShippingError handler in main.
"""
import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.api.deps import get_carrier_client, get_current_admin, get_shipment_tracker
from app.core.database import get_db
from app.core.exceptions import OrderNotFoundError
from app.models.order import Order
from app.models.user import User
from app.modules.shipping.client import ShiprocketClient
from app.modules.shipping.progression import (
    ShipmentProgressionTracker,
    StepResult,
    shipment_stage,
    tracking_snapshot,
)
from app.schemas.shipping import AssignAwbRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["shipments"])

# Order.id is a 32-bit integer column
MAX_ORDER_ID = 2**31 - 1


def ok(data) -> dict:
    return {"ok": True, "data": data}


async def find_order(db: AsyncSession, order_ref: str) -> Order:
    """Look an order up by numeric id or by order number."""
    ref = order_ref.strip()
    query = select(Order).options(selectinload(Order.items))
    if ref.isascii() and ref.isdigit() and int(ref) <= MAX_ORDER_ID:
        query = query.where(or_(Order.id == int(ref), Order.order_number == ref))
    else:
        query = query.where(Order.order_number == ref)

    result = await db.execute(query)
    order = result.scalars().first()
    if not order:
        raise OrderNotFoundError(f"Order {order_ref} not found", details={"order_ref": order_ref})
    return order


async def _finish_step(db: AsyncSession, order: Order, result: StepResult, admin: User) -> dict:
    if not result.skipped and any(value is not None for value in result.fields.values()):
        await db.commit()
        logger.info(
            f"[SHIPROCKET] {result.step.value} recorded for order {order.order_number} by admin {admin.id}"
        )
    data = result.to_dict()
    data.update({
        "order_id": order.id,
        "order_number": order.order_number,
        "stage": shipment_stage(order).value,
        "tracking": tracking_snapshot(order),
    })
    return ok(data)


# ==================== Public ====================


@router.get("/serviceability")
async def check_serviceability(
    pickup_postcode: str = Query(..., pattern=r"^\d{6}$"),
    delivery_postcode: str = Query(..., pattern=r"^\d{6}$"),
    weight: float = Query(0.5, gt=0),
    cod: bool = Query(False),
    declared_value: float = Query(0, ge=0),
    mode: Literal["Surface", "Air"] = Query("Surface"),
    client: ShiprocketClient = Depends(get_carrier_client),
):
    """Proxy the carrier's courier serviceability check."""
    data = await client.serviceability(
        pickup_postcode=pickup_postcode,
        delivery_postcode=delivery_postcode,
        weight=weight,
        cod=1 if cod else 0,
        declared_value=declared_value,
        mode=mode,
    )
    return ok(data)


# ==================== Fulfillment steps (admin) ====================


@router.get("/order/{order_ref}/shipment")
async def get_shipment_status(
    order_ref: str,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    """Current fulfillment stage and recorded tracking fields."""
    order = await find_order(db, order_ref)
    return ok({
        "order_id": order.id,
        "order_number": order.order_number,
        "stage": shipment_stage(order).value,
        "tracking": tracking_snapshot(order),
    })


@router.post("/order/{order_ref}/shipment/create")
async def create_shipment(
    order_ref: str,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    tracker: ShipmentProgressionTracker = Depends(get_shipment_tracker),
):
    order = await find_order(db, order_ref)
    result = await tracker.create_shipment(order)
    return await _finish_step(db, order, result, admin)


@router.post("/order/{order_ref}/shipment/assign-awb")
async def assign_awb(
    order_ref: str,
    body: Optional[AssignAwbRequest] = None,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    tracker: ShipmentProgressionTracker = Depends(get_shipment_tracker),
):
    order = await find_order(db, order_ref)
    courier_id = body.courier_id if body else None
    result = await tracker.assign_awb(order, courier_id=courier_id)
    return await _finish_step(db, order, result, admin)


@router.post("/order/{order_ref}/shipment/pickup")
async def request_pickup(
    order_ref: str,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    tracker: ShipmentProgressionTracker = Depends(get_shipment_tracker),
):
    order = await find_order(db, order_ref)
    result = await tracker.request_pickup(order)
    return await _finish_step(db, order, result, admin)


@router.post("/order/{order_ref}/shipment/label")
async def generate_label(
    order_ref: str,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    tracker: ShipmentProgressionTracker = Depends(get_shipment_tracker),
):
    order = await find_order(db, order_ref)
    result = await tracker.generate_label(order)
    return await _finish_step(db, order, result, admin)


@router.post("/order/{order_ref}/shipment/invoice")
async def generate_invoice(
    order_ref: str,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    tracker: ShipmentProgressionTracker = Depends(get_shipment_tracker),
):
    order = await find_order(db, order_ref)
    result = await tracker.generate_invoice(order)
    return await _finish_step(db, order, result, admin)


@router.post("/order/{order_ref}/shipment/manifest")
async def generate_manifest(
    order_ref: str,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    tracker: ShipmentProgressionTracker = Depends(get_shipment_tracker),
):
    order = await find_order(db, order_ref)
    result = await tracker.generate_manifest(order)
    return await _finish_step(db, order, result, admin)


@router.get("/order/{order_ref}/shipment/track")
async def track_order_shipment(
    order_ref: str,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    tracker: ShipmentProgressionTracker = Depends(get_shipment_tracker),
):
    order = await find_order(db, order_ref)
    result = await tracker.track(order)
    return ok(result.to_dict())


# ==================== Tracking (admin) ====================


@router.get("/shipment/track/{awb}")
async def track_awb(
    awb: str,
    admin: User = Depends(get_current_admin),
    client: ShiprocketClient = Depends(get_carrier_client),
):
    data = await client.track_by_awb(awb)
    return ok(data)
