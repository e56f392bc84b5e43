from typing import Dict, Optional


class SocialVoxError(Exception):
    """Base class for expected, user-facing failures of the survey service."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SocialVoxError):
    # Bad form input; `fields` maps a field name to its inline message.
    def __init__(self, message: str, fields: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.fields = fields or {}


class NotFoundError(SocialVoxError):
    # Referenced survey, folder, user, response or recording is missing.
    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} {entity_id} no encontrado")
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(SocialVoxError):
    # Duplicate username or email.
    def __init__(self, message: str, field: str):
        super().__init__(message)
        self.field = field


class NetworkError(SocialVoxError):
    # Simulated remote failure. Retryable; nothing was mutated.
    pass


class PermissionDenied(SocialVoxError):
    # Role outside the allowed set; callers redirect to `redirect_to`.
    def __init__(self, message: str, redirect_to: str = "/"):
        super().__init__(message)
        self.redirect_to = redirect_to


class DeviceError(SocialVoxError):
    # Microphone or geolocation unavailable or permission denied.
    pass


class AuthenticationError(SocialVoxError):
    # Bad credentials, inactive account or login lockout.
    def __init__(self, message: str, locked: bool = False):
        super().__init__(message)
        self.locked = locked
