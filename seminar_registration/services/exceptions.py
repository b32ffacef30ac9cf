"""
Errors raised by the registration, waiting list and email queue services.

Each error carries a stable `code` so the HTTP layer (and any other caller)
can show an actionable message without parsing text.
"""


class RegistrationServiceError(Exception):
    code = "REGISTRATION_ERROR"

    def __init__(self, message: str = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class SlotNotFound(RegistrationServiceError):
    code = "SLOT_NOT_FOUND"


class DuplicateRegistration(RegistrationServiceError):
    code = "DUPLICATE_REGISTRATION"


class RegistrationLimitReached(RegistrationServiceError):
    code = "REGISTRATION_LIMIT_REACHED"


class SlotFull(RegistrationServiceError):
    code = "SLOT_FULL"


class NotRegistered(RegistrationServiceError):
    code = "NOT_REGISTERED"


class TokenNotFound(RegistrationServiceError):
    code = "TOKEN_NOT_FOUND"


class TokenExpired(RegistrationServiceError):
    code = "TOKEN_EXPIRED"


class AlreadyResolved(RegistrationServiceError):
    code = "ALREADY_RESOLVED"


class OfferNotFound(RegistrationServiceError):
    code = "OFFER_NOT_FOUND"


class OfferExpired(RegistrationServiceError):
    code = "OFFER_EXPIRED"


class AlreadyWaiting(RegistrationServiceError):
    code = "ALREADY_WAITING"


class NotWaiting(RegistrationServiceError):
    code = "NOT_WAITING"


# Delivery outcomes. These are recorded on the queue row and logged, never
# raised to end users.

class DeliveryFailure(RegistrationServiceError):
    """Transient send failure; the row goes back to PENDING."""
    code = "DELIVERY_FAILURE"


class DeliveryExhausted(RegistrationServiceError):
    """Retries used up; the row is FAILED and needs an operator."""
    code = "DELIVERY_EXHAUSTED"
