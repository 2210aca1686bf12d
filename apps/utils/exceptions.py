from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework import status
import logging

logger = logging.getLogger(__name__)

class BusinessLogicException(Exception):
    """
    Raised when a domain rule is violated (e.g. 'Stock not available').
    Subclasses pick their own HTTP status and machine-readable code.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "business_error"

    def __init__(self, message, code=None, status_code=None):
        self.message = message
        self.code = code or self.default_code
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_dict(self):
        return {"error": self.message, "code": self.code}

def custom_exception_handler(exc, context):
    # Call REST framework's default exception handler first
    response = exception_handler(exc, context)

    if isinstance(exc, BusinessLogicException):
        return Response(exc.to_dict(), status=exc.status_code)

    # If response is None, it's an unhandled server error (500)
    if response is None:
        logger.error(f"Unhandled Exception: {exc}", exc_info=True)
        return Response(
            {"error": "Internal Server Error", "code": "server_error"},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    return response
