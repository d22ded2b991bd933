"""
SQLAlchemy Database Models

Tables for the table-side ordering lifecycle:
- Menu catalog (prices in minor currency units)
- Orders and their line items, each with its own status
- Table admission tokens printed into the QR codes
- Payments recorded by the billing flow

Version: 1.0.0
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from tableorder.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def _status_enum(enum_cls: type[enum.Enum], name: str) -> Enum:
    """Store enum values ("in_kitchen"), not member names."""
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        create_constraint=True,
        length=20,
        values_callable=lambda members: [m.value for m in members],
    )


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class ItemStatus(str, enum.Enum):
    """Kitchen lifecycle of a single order line."""
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"


class OrderStatus(str, enum.Enum):
    """Order status, derived from item statuses until billing settles it."""
    PENDING = "pending"
    IN_KITCHEN = "in_kitchen"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"
    CLOSED = "closed"
    PAID = "paid"


class PaymentProvider(str, enum.Enum):
    STRIPE = "stripe"
    CASH = "cash"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class MenuItem(Base):
    """Menu catalog entry. Prices are copied into order items at order time."""
    __tablename__ = "menu_items"
    __table_args__ = (
        CheckConstraint("price_cents >= 0", name="ck_menu_items_price"),
    )

    menu_item_id = Column(String(50), primary_key=True)
    name = Column(String(200), nullable=False)
    price_cents = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True, index=True)
    available = Column(Boolean, default=True, nullable=False, index=True)
    image_url = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    def to_record(self) -> dict[str, Any]:
        return {
            "menu_item_id": self.menu_item_id,
            "name": self.name,
            "price_cents": self.price_cents,
            "description": self.description,
            "category": self.category,
            "available": self.available,
            "image_url": self.image_url,
        }

    def __repr__(self):
        return f"<MenuItem {self.menu_item_id} - {self.name} - {self.price_cents}>"


class Order(Base):
    """
    One table's order.

    ``status`` is recomputed from the item statuses by the transition
    engine; only billing sets the terminal ``paid`` / ``closed`` values.
    """
    __tablename__ = "orders"

    order_id = Column(String(36), primary_key=True, default=new_id)
    table_id = Column(String(50), nullable=False, index=True)
    status = Column(
        _status_enum(OrderStatus, "order_status"),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="OrderItem.created_at",
        lazy="selectin",
    )
    payments = relationship(
        "Payment",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def total_cents(self) -> int:
        return sum(item.price_cents * item.qty for item in self.items)

    def to_record(self, include_items: bool = False) -> dict[str, Any]:
        record = {
            "order_id": self.order_id,
            "table_id": self.table_id,
            "status": OrderStatus(self.status).value,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_items:
            record["items"] = [item.to_record() for item in self.items]
        return record

    def __repr__(self):
        return f"<Order {self.order_id} - table {self.table_id} - {self.status}>"


class OrderItem(Base):
    """
    One line of an order.

    Name and price are captured from the menu when the order is placed;
    afterwards only ``status`` and ``updated_at`` ever change.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("qty > 0", name="ck_order_items_qty"),
        CheckConstraint("price_cents >= 0", name="ck_order_items_price"),
    )

    order_item_id = Column(String(36), primary_key=True, default=new_id)
    order_id = Column(
        String(36),
        ForeignKey("orders.order_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    menu_item_id = Column(String(50), nullable=False)
    name = Column(String(200), nullable=False)
    qty = Column(Integer, nullable=False, default=1)
    price_cents = Column(Integer, nullable=False)
    status = Column(
        _status_enum(ItemStatus, "item_status"),
        default=ItemStatus.PENDING,
        nullable=False,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    order = relationship("Order", back_populates="items")

    def to_record(self) -> dict[str, Any]:
        return {
            "order_item_id": self.order_item_id,
            "order_id": self.order_id,
            "menu_item_id": self.menu_item_id,
            "name": self.name,
            "qty": self.qty,
            "price_cents": self.price_cents,
            "status": ItemStatus(self.status).value,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<OrderItem {self.order_item_id} - {self.name} x{self.qty} - {self.status}>"


class TableToken(Base):
    """Admission token bound to a physical table (the QR code payload)."""
    __tablename__ = "table_tokens"

    table_id = Column(String(50), primary_key=True)
    token = Column(String(100), unique=True, nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<TableToken {self.table_id} - expires {self.expires_at}>"


class Payment(Base):
    """A checkout session or cash settlement recorded against an order."""
    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_payments_amount"),
    )

    payment_id = Column(String(36), primary_key=True, default=new_id)
    order_id = Column(
        String(36),
        ForeignKey("orders.order_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    amount_cents = Column(Integer, nullable=False)
    provider = Column(_status_enum(PaymentProvider, "payment_provider"), nullable=False)
    provider_payment_id = Column(String(255), nullable=True, index=True)
    status = Column(
        _status_enum(PaymentStatus, "payment_status"),
        default=PaymentStatus.PENDING,
        nullable=False,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    order = relationship("Order", back_populates="payments")

    def to_record(self) -> dict[str, Any]:
        return {
            "payment_id": self.payment_id,
            "order_id": self.order_id,
            "amount_cents": self.amount_cents,
            "provider": PaymentProvider(self.provider).value,
            "provider_payment_id": self.provider_payment_id,
            "status": PaymentStatus(self.status).value,
        }

    def __repr__(self):
        return f"<Payment {self.payment_id} - {self.provider} - {self.status}>"
