"""
Order models

The storefront's checkout owns these rows. Fulfillment reads the order and
line items and writes back only the carrier tracking columns below.
"""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, JSON, Numeric, Index
from sqlalchemy.orm import relationship

from app.core.database import Base


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Order details
    order_number = Column(String, unique=True, index=True, nullable=False)
    status = Column(String, default="pending", index=True)

    # Pricing - Numeric(12,2) for money
    subtotal = Column(Numeric(12, 2), nullable=False)
    shipping_cost = Column(Numeric(12, 2), default=0)
    tax = Column(Numeric(12, 2), default=0)
    total = Column(Numeric(12, 2), nullable=False)

    # {full_name, phone_number, email, address_line1, address_line2, city, state, pincode}
    shipping_address = Column(JSON)
    # {length_cm, breadth_cm, height_cm, weight_kg}, filled in by packing staff
    shipping_package = Column(JSON, nullable=True)

    # Payment ("cod", "razorpay", ...)
    payment_method = Column(String)
    payment_id = Column(String)

    notes = Column(Text)

    # Carrier tracking - written one fulfillment step at a time, never cleared
    shipment_id = Column(String(64), nullable=True, index=True)
    awb_code = Column(String(64), nullable=True, index=True)
    courier_name = Column(String(255), nullable=True)
    label_url = Column(Text, nullable=True)
    invoice_url = Column(Text, nullable=True)
    manifest_url = Column(Text, nullable=True)
    pickup_requested_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    # Relationships
    user = relationship("User", back_populates="orders")
    items = relationship("OrderItem", back_populates="order")

    __table_args__ = (
        Index('ix_orders_user_id', 'user_id'),
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    # Catalog lives in another service; no FK
    product_id = Column(Integer, nullable=True, index=True)

    # Snapshot of product at time of order
    product_name = Column(String(500), nullable=False)
    product_sku = Column(String(50))
    price = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="items")
