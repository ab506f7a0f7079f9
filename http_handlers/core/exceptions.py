"""
Exceptions raised by the request handlers
"""


class HandlerError(Exception):
    """Base exception for handler errors"""

    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class GzipDecodeError(HandlerError):
    """Raised when a body declared as gzip does not decompress"""

    def __init__(self, message: str = "failed to read gzipped request"):
        super().__init__(message, status_code=400)


class TransactionIDNotFoundError(HandlerError, LookupError):
    """Raised when no transaction ID is bound to the current context"""

    def __init__(self, message: str = "transaction ID not found in context"):
        super().__init__(message, status_code=500)
