"""Domain exceptions."""


class CarrierError(Exception):
    """Base exception for SMS carrier errors."""

    def __init__(self, message: str, code: int | None = None, status: int | None = None):
        super().__init__(message)
        self.code = code
        self.status = status


class CarrierMessageNotFoundError(CarrierError):
    """The carrier has no record of the requested message."""
    pass


class CarrierConfigurationError(CarrierError):
    """Carrier credentials are missing."""
    pass


class IdempotencyPersistError(Exception):
    """An idempotency claim could not be finalized."""
    pass


class InvalidPhoneNumberError(ValueError):
    """Phone number cannot be normalized to E.164."""
    pass
