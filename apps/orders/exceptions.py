from rest_framework import status
from apps.utils.exceptions import BusinessLogicException


class OrderNotFound(BusinessLogicException):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "order_not_found"

    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found.")


class InvalidTransition(BusinessLogicException):
    status_code = status.HTTP_409_CONFLICT
    default_code = "invalid_transition"

    def __init__(self, current_status, attempted_status, message=None):
        self.current_status = current_status
        self.attempted_status = attempted_status
        super().__init__(
            message or f"Cannot move order from {current_status} to {attempted_status}."
        )

    def to_dict(self):
        data = super().to_dict()
        data["current_status"] = str(self.current_status)
        data["attempted_status"] = str(self.attempted_status)
        return data


class ConcurrentTransition(InvalidTransition):
    """
    Another transition on the same order was committed first.
    """
    default_code = "concurrent_transition"

    def __init__(self, current_status, attempted_status):
        super().__init__(
            current_status,
            attempted_status,
            message=(
                f"Order changed while moving from {current_status} to {attempted_status}; "
                "reload the timeline and retry."
            ),
        )


class StatusValidationError(BusinessLogicException):
    default_code = "validation_error"


class StoreUnavailable(BusinessLogicException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = "store_unavailable"
