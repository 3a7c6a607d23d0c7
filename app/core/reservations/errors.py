"""Exceptions raised by the reservation engine and its adapters."""


class ReservationError(Exception):
    """Base class for reservation engine errors."""
    pass


class StorageError(ReservationError):
    """A session store or reservation repository could not be reached."""
    pass


class SessionCorruptedError(StorageError):
    """A stored wizard session could not be decoded."""

    def __init__(self, session_id: str, reason: str):
        self.session_id = session_id
        self.reason = reason
        super().__init__(f"Session {session_id} is corrupted: {reason}")


class InvalidIntervalError(ReservationError):
    """Availability was requested for a range where check-out <= check-in."""

    def __init__(self, check_in, check_out):
        self.check_in = check_in
        self.check_out = check_out
        super().__init__(
            f"Invalid stay interval: check-out {check_out} is not after check-in {check_in}"
        )


class InvalidTransitionError(ReservationError):
    """The flow attempted a step change the state machine does not allow."""

    def __init__(self, from_step, to_step):
        self.from_step = from_step
        self.to_step = to_step
        super().__init__(f"Invalid step transition: {from_step} -> {to_step}")


class ReservationNotFoundError(ReservationError):
    """An update targeted a reservation that no longer exists."""

    def __init__(self, reservation_id: str):
        self.reservation_id = reservation_id
        super().__init__(f"Reservation {reservation_id} not found")
