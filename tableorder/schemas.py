"""
Pydantic Schemas for Request/Response Validation

Webhook payloads keep the camelCase field names the table and staff
frontends already send (tableId, orderItemId, servedItems...). Read
endpoints return snake_case rows, the same shape the change stream
delivers.

Version: 1.0.0
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from tableorder.models import ItemStatus, OrderStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class OrderLineRequest(CamelModel):
    """
    Single cart line.

    Any price the client sends is ignored; the catalog price is used.
    Quantity bounds are checked by the gateway so the caller gets the
    domain error message.
    """
    menu_item_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("itemId", "menuItemId", "menu_item_id"),
        examples=["MENU001"],
    )
    name: Optional[str] = Field(None, max_length=200, examples=["Masala Dosa"])
    quantity: int = Field(
        ...,
        validation_alias=AliasChoices("qty", "quantity"),
        examples=[2],
    )


class OrderCreateRequest(CamelModel):
    """POST /webhook/order-create"""
    table_id: str = Field(..., min_length=1, alias="tableId", examples=["T1"])
    token: str = Field(..., min_length=1, examples=["ABC123XYZ789"])
    items: List[OrderLineRequest] = Field(default_factory=list)


class KitchenUpdateLine(CamelModel):
    order_item_id: str = Field(..., alias="orderItemId")
    status: Literal["preparing", "ready"]
    expected_status: Optional[ItemStatus] = Field(None, alias="expectedStatus")


class KitchenUpdateRequest(CamelModel):
    """POST /webhook/kitchen-update"""
    order_id: str = Field(..., alias="orderId")
    updates: List[KitchenUpdateLine] = Field(..., min_length=1)


class OrderServedRequest(CamelModel):
    """POST /webhook/order-served"""
    order_id: str = Field(..., alias="orderId")
    served_items: List[str] = Field(..., min_length=1, alias="servedItems")
    timestamp: Optional[datetime] = None


class GenerateBillRequest(CamelModel):
    """POST /webhook/generate-bill"""
    order_id: str = Field(..., alias="orderId")


class ItemStatusUpdateRequest(CamelModel):
    """POST /api/order-items/{order_item_id}/status"""
    status: ItemStatus
    expected_status: Optional[ItemStatus] = Field(None, alias="expectedStatus")


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class OrderCreateResponse(CamelModel):
    order_id: str = Field(..., alias="orderId")


class GenerateBillResponse(CamelModel):
    checkout_url: str = Field(..., alias="checkoutUrl")


class OrderStatusResponse(CamelModel):
    order_id: str = Field(..., alias="orderId")
    status: OrderStatus


class ItemStatusResponse(CamelModel):
    order_status: OrderStatus = Field(..., alias="orderStatus")


class MenuItemResponse(BaseModel):
    """Menu entry shown to the table."""
    model_config = ConfigDict(from_attributes=True)

    menu_item_id: str
    name: str
    price_cents: int
    description: Optional[str] = None
    category: Optional[str] = None
    available: bool
    image_url: Optional[str] = None


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order_item_id: str
    order_id: str
    menu_item_id: str
    name: str
    qty: int
    price_cents: int
    status: ItemStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderResponse(BaseModel):
    """An order with its items."""
    model_config = ConfigDict(from_attributes=True)

    order_id: str
    table_id: str
    status: OrderStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    total_cents: int
    items: List[OrderItemResponse]


class OrderListResponse(BaseModel):
    """Response for listing multiple orders."""
    total: int
    orders: List[OrderResponse]


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    message: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    notifier: str
    payment_service: str
    timestamp: datetime
