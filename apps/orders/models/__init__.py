"""
Top-level models import shim for the Orders app.

Keeps `from apps.orders.models import Order` working while the
models live in separate modules.
"""

from .order import *          # Order, OrderStatus
from .item import *           # OrderItem
from .timeline import *       # OrderStatusEntry
