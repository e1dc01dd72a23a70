"""Domain errors raised by the booking core.

Routes never translate these by hand: ``app.main`` registers a handler that
maps every ``BookingError`` to its status code and public message.
"""

GENERIC_FAILURE = "Something went wrong processing your booking. Please try again."


class BookingError(Exception):
    status_code: int = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    @property
    def public_message(self) -> str:
        return self.message


class InvalidInput(BookingError):
    status_code = 400


class NotFound(BookingError):
    status_code = 404


class Forbidden(BookingError):
    status_code = 403


class Conflict(BookingError):
    status_code = 409


class PaymentNotSuccessful(BookingError):
    status_code = 400


class GatewayError(BookingError):
    """Payment provider call failed, or a webhook signature did not verify."""

    status_code = 502

    @property
    def public_message(self) -> str:
        return GENERIC_FAILURE


class InvalidSignature(GatewayError):
    status_code = 400

    @property
    def public_message(self) -> str:
        return "Invalid webhook signature"


class PersistenceError(BookingError):
    status_code = 500

    @property
    def public_message(self) -> str:
        return GENERIC_FAILURE
