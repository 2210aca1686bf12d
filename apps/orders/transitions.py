"""
Order status state machine.

PLACED -> CONFIRMED -> PACKED -> SHIPPED -> DELIVERED, with cancellation
allowed until the parcel ships and a refund edge out of DELIVERED and
CANCELLED. Nothing leaves REFUNDED.
"""
from .models.order import OrderStatus

INITIAL_STATUS = OrderStatus.PLACED

ALLOWED_TRANSITIONS = {
    OrderStatus.PLACED: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PACKED, OrderStatus.CANCELLED}),
    OrderStatus.PACKED: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.REFUNDED: frozenset(),
}

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED})


def next_statuses(current):
    """Statuses reachable in one step, in declaration order."""
    allowed = ALLOWED_TRANSITIONS[OrderStatus(current)]
    return [status for status in OrderStatus if status in allowed]


def can_transition(current, target) -> bool:
    return OrderStatus(target) in ALLOWED_TRANSITIONS[OrderStatus(current)]


def is_terminal(status) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES


def is_valid_walk(statuses) -> bool:
    """
    True if `statuses` starts at PLACED and every step is a legal edge.
    """
    statuses = list(statuses)
    if not statuses or statuses[0] != INITIAL_STATUS:
        return False
    return all(can_transition(a, b) for a, b in zip(statuses, statuses[1:]))
