"""Exception classes raised by the event pass modules."""


class EventPassError(Exception):
    """Base exception for all event pass errors."""

    pass


class EventNotFoundError(EventPassError):
    """Raised when a requested event cannot be found."""

    def __init__(self, event_id):
        self.event_id = event_id
        super().__init__(f"Event '{event_id}' not found")


class RegistrationNotFoundError(EventPassError):
    """Raised when a requested registration cannot be found."""

    def __init__(self, registration_id):
        self.registration_id = registration_id
        super().__init__(f"Registration '{registration_id}' not found")


class DuplicateRegistrationError(EventPassError):
    """Raised when a roll number is already registered for an event."""

    def __init__(self, event_id, roll_number):
        self.event_id = event_id
        self.roll_number = roll_number
        super().__init__(f"Roll number '{roll_number}' is already registered for event '{event_id}'")


class CertificateIssueError(EventPassError):
    """Raised when a certificate batch could not be written.

    The batch is written in one transaction, so none of ``roll_numbers`` were
    issued. Re-running issuance is safe.
    """

    def __init__(self, event_id, roll_numbers, reason):
        self.event_id = event_id
        self.roll_numbers = list(roll_numbers)
        self.reason = reason
        super().__init__(
            f"Failed to issue {len(self.roll_numbers)} certificate(s) for event '{event_id}': {reason}"
        )
