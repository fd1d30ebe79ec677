"""Exceptions raised by presence tracking and message delivery."""


class InvalidIdentityError(Exception):
    """Raised when an identity token fails verification or names no mechanic."""
    pass


class DeliveryError(Exception):
    """Raised when a single notification could not be delivered."""
    pass
