"""Exceptions raised by the obligation generation engine."""

from typing import Any


class ObligationEngineError(Exception):
    """Base exception for all engine errors."""

    error_code = "ENGINE_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class InvalidBusinessProfile(ObligationEngineError):
    """Business profile lacks the classification fields needed for matching."""

    error_code = "INVALID_BUSINESS_PROFILE"

    def __init__(self, message: str, business_id: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.business_id = business_id
        self.details["business_id"] = business_id


class TemplateMalformed(ObligationEngineError):
    """Recurrence template record cannot be interpreted."""

    error_code = "TEMPLATE_MALFORMED"

    def __init__(self, message: str, template_id: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.template_id = template_id
        self.details["template_id"] = template_id


class PersistenceUnavailable(ObligationEngineError):
    """A collaborator read or write could not be completed."""

    error_code = "PERSISTENCE_UNAVAILABLE"

    def __init__(
        self, message: str, status_code: int | None = None, **kwargs: Any
    ):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class NotFound(ObligationEngineError):
    """Requested record does not exist."""

    error_code = "NOT_FOUND"


class BusinessNotFound(NotFound):
    """Business profile lookup returned nothing."""

    error_code = "BUSINESS_NOT_FOUND"

    def __init__(self, business_id: str, **kwargs: Any):
        super().__init__(f"Business {business_id} not found", **kwargs)
        self.business_id = business_id
        self.details["business_id"] = business_id


class NoAuthorizedActor(ObligationEngineError):
    """Trigger actor does not resolve to an account allowed to run generation."""

    error_code = "NO_AUTHORIZED_ACTOR"

    def __init__(self, message: str, actor: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.actor = actor
        self.details["actor"] = actor
