from __future__ import annotations

from typing import Any


class CRMError(Exception):
    """Domain error carrying a machine-readable code and the HTTP status it maps to."""

    code = "CRM_ERROR"
    status_code = 400

    def __init__(self, message: str, details: Any = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


class LeadConvertedError(CRMError):
    code = "LEAD_CONVERTED"
    status_code = 409

    def __init__(self, lead_id: str) -> None:
        self.lead_id = lead_id
        super().__init__("Lead has already been converted and cannot be modified", {"lead_id": lead_id})


class EmailPhoneSameError(CRMError):
    code = "EMAIL_PHONE_SAME"
    status_code = 400

    def __init__(self) -> None:
        super().__init__("Email and phone number cannot be the same")


class DuplicateLeadError(CRMError):
    """Raised when email and/or phone collide with another lead."""

    code = "DUPLICATE"
    status_code = 409

    def __init__(self, email: bool, phone: bool) -> None:
        self.fields = {"email": email, "phone": phone}
        clashing = [name for name, flag in self.fields.items() if flag]
        super().__init__(f"A lead with this {' and '.join(clashing)} already exists", dict(self.fields))


class EntityNotFoundError(CRMError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity_type: str) -> None:
        self.entity_type = entity_type
        super().__init__(f"{entity_type} not found")


class ParentNotFoundError(CRMError):
    code = "PARENT_NOT_FOUND"
    status_code = 422

    def __init__(self, entity_type: str, entity_id: str) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found", {"entity_type": entity_type, "entity_id": entity_id})


class DuplicateRegistrationError(CRMError):
    """Raised when email and/or number are already registered for the same event."""

    code = "DUPLICATE"
    status_code = 409

    def __init__(self, email: bool, number: bool) -> None:
        self.fields = {"email": email, "number": number}
        clashing = [name for name, flag in self.fields.items() if flag]
        super().__init__(f"Duplicate {' and '.join(clashing)} for this event", dict(self.fields))


class RegistrationConvertedError(CRMError):
    code = "REGISTRATION_CONVERTED"
    status_code = 409

    def __init__(self, registration_id: str, lead_id: str | None) -> None:
        self.registration_id = registration_id
        super().__init__(
            "Registration has already been converted to a lead",
            {"registration_id": registration_id, "lead_id": lead_id},
        )


class IncompleteRegistrationError(CRMError):
    code = "REGISTRATION_INCOMPLETE"
    status_code = 422

    def __init__(self, registration_id: str, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(
            f"Registration is missing {', '.join(missing)} required for a lead",
            {"registration_id": registration_id, "missing": missing},
        )
