"""Domain errors raised by the booking, payment and catalog services."""


class CineBookError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class NotFound(CineBookError):
    def __init__(self, message: str):
        super().__init__(message, 404)


class Forbidden(CineBookError):
    def __init__(self, message: str):
        super().__init__(message, 403)


class SeatUnavailable(CineBookError):
    """Some of the requested seats are already held for the showtime."""

    def __init__(self, seats):
        self.seats = sorted(seats)
        if self.seats:
            message = f"Seats no longer available: {', '.join(self.seats)}"
        else:
            message = "Some seats are no longer available."
        super().__init__(message, 409)


class InvalidSeatCount(CineBookError):
    def __init__(self, message: str):
        super().__init__(message, 400)


class InvalidSeatSelection(CineBookError):
    def __init__(self, message: str):
        super().__init__(message, 400)


class InvalidPayment(CineBookError):
    def __init__(self, message: str):
        super().__init__(message, 400)


class InvalidTransition(CineBookError):
    def __init__(self, message: str):
        super().__init__(message, 409)


class ShowtimeConflict(CineBookError):
    def __init__(self, message: str, conflicting=None):
        self.conflicting = conflicting
        super().__init__(message, 409)


class InvalidShowtime(CineBookError):
    def __init__(self, message: str):
        super().__init__(message, 400)


class DependencyFailure(CineBookError):
    """The database or another backing service could not complete a write."""

    def __init__(self, message: str):
        super().__init__(message, 503)
