"""
                        Services Module

Business logic for the ordering lifecycle. External integrations follow
the hybrid pattern: an in-process or mock implementation for development
and a real one (Redis, Stripe) for staging and production.

Services:
    - gateway: token-checked, atomic order submission
    - transitions: item status changes and derived order status
    - billing: checkout sessions and payment settlement
    - notifications: change events for the kitchen and waiter dashboards
    - payment: Stripe checkout
"""

from tableorder.services.billing import BillingService
from tableorder.services.gateway import CartLine, OrderGateway
from tableorder.services.order_store import OrderStore
from tableorder.services.transitions import ItemChange, StatusTransitionEngine

__all__ = [
    "BillingService",
    "CartLine",
    "OrderGateway",
    "OrderStore",
    "ItemChange",
    "StatusTransitionEngine",
]
