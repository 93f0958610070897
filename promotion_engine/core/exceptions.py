"""
Engine-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and translate them into consistent HTTP responses (see utils.errors).

Every business outcome carries structured fields so callers can act on it
without parsing messages:

    not-found             NotFoundError, TemplateNotFound            → 404
    forbidden             ForbiddenError                             → 403
    invalid transition    InvalidStatusTransition                    → 409
    business validation   ValidationError and subclasses             → 400 / 422
    unsatisfied template  ValidationFailed                           → 409
    reservation conflict  ReservationConflict                        → 409
    storage failure       StorageError                               → 500 (opaque)

Usage:
    from promotion_engine.core.exceptions import NotFoundError, ReservationConflict

    raise NotFoundError(resource="Promotion", resource_id=promotion_id)
    raise ReservationConflict(badge_application_id=app_id, owning_promotion_id=other_id)
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Promotion", "BadgeApplication").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class TemplateNotFound(NotFoundError):
    """Raised when a promotion template id does not resolve."""

    def __init__(self, template_id: str) -> None:
        super().__init__(resource="PromotionTemplate", resource_id=template_id)


class ForbiddenError(Exception):
    """Raised when the requester does not own the resource they act on.

    Args:
        action: The attempted action (e.g. "submit", "add_badges").
        resource: Entity name.
        resource_id: Entity PK.
        user_id: The requester.
    """

    def __init__(self, action: str, resource: str, resource_id: str, user_id: str | None) -> None:
        self.action = action
        self.resource = resource
        self.resource_id = resource_id
        self.user_id = user_id
        super().__init__(f"User {user_id} may not '{action}' {resource} id={resource_id}")


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class EmptyReason(ValidationError):
    """Raised when a mandatory justification (reject reason / review note) is blank."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"'{field}' is required and must not be empty", details={field: "required"})


class InvalidReference(ValidationError):
    """Raised when a referenced catalog badge exists but is not usable (inactive)."""

    def __init__(self, resource: str, resource_id: str, reason: str) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(
            f"{resource} id={resource_id} {reason}",
            details={"resource": resource, "resource_id": resource_id, "reason": reason},
        )


class TemplateInactive(ValidationError):
    """Raised when a promotion is created from a deactivated template."""

    def __init__(self, template_id: str) -> None:
        self.template_id = template_id
        super().__init__(
            f"PromotionTemplate id={template_id} is not active",
            details={"template_id": template_id},
        )


class InvalidBadgeApplication(ValidationError):
    """Raised when a badge application cannot be reserved (missing or not accepted).

    Args:
        badge_application_id: The offending id, always reported back to the caller.
        reason: "not_found" | "not_accepted".
        current_status: Actual status when the application exists.
    """

    def __init__(self, badge_application_id: str, reason: str, current_status: str | None = None) -> None:
        self.badge_application_id = badge_application_id
        self.reason = reason
        self.current_status = current_status
        msg = f"Badge application {badge_application_id} "
        msg += "not found" if reason == "not_found" else f"is not accepted (status={current_status})"
        details = {"badge_application_id": badge_application_id, "reason": reason}
        if current_status is not None:
            details["current_status"] = current_status
        super().__init__(msg, details=details)


class InvalidStatusTransition(Exception):
    """Raised when an action is attempted from a state that does not permit it.

    Carries both the attempted action and the actual status for diagnostics.
    Non-retriable: the caller must change state first.
    """

    def __init__(
        self,
        resource: str,
        resource_id: str,
        action: str,
        current_status: str,
        allowed_from: list[str] | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.action = action
        self.current_status = current_status
        self.allowed_from = list(allowed_from or [])
        msg = f"Cannot '{action}' {resource} {resource_id} (status={current_status})"
        if self.allowed_from:
            msg += f"; allowed from: {', '.join(self.allowed_from)}"
        super().__init__(msg)


class ValidationFailed(Exception):
    """Raised when a promotion's reserved badges do not satisfy its template.

    A normal outcome of submit: the caller adjusts the badge set and retries.

    Args:
        promotion_id: Promotion being submitted.
        missing: Gap report, ``[{"category", "level", "count"}]``.
    """

    def __init__(self, promotion_id: str, missing: list[dict]) -> None:
        self.promotion_id = promotion_id
        self.missing = missing
        super().__init__(
            f"Promotion {promotion_id} does not satisfy its template "
            f"({len(missing)} unmet requirement(s))"
        )


class ReservationConflict(Exception):
    """Raised when a badge application is already claimed by another promotion.

    Maps to HTTP 409. ``owning_promotion_id`` is always looked up from the
    ledger, never guessed.
    """

    def __init__(self, badge_application_id: str, owning_promotion_id: str | None) -> None:
        self.badge_application_id = badge_application_id
        self.owning_promotion_id = owning_promotion_id
        super().__init__(
            f"Badge application {badge_application_id} is already reserved "
            f"by promotion {owning_promotion_id}"
        )


class StorageError(Exception):
    """Raised when the database is unreachable or rejects a write for
    infrastructure reasons. The transaction has been rolled back."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Storage failure during {operation}")
