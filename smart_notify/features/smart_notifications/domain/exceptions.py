"""
Errors raised before the pipeline is allowed to run.

Everything past input validation is recovered inside the pipeline, so
these are the only exceptions the API layer maps to 4xx responses.
"""


class NotificationInputError(Exception):
    """Unknown conversation, journal entry or other missing input."""

    def __init__(self, message: str, recoverable: bool = False):
        super().__init__(message)
        self.recoverable = recoverable


class NotificationPermissionError(Exception):
    """Caller is not allowed to act on the requested resource."""

    def __init__(self, message: str, recoverable: bool = False):
        super().__init__(message)
        self.recoverable = recoverable
