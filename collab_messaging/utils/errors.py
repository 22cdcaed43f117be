"""Error taxonomy shared by the HTTP API, the realtime channel and the client."""

from typing import Dict, Optional, Type


class MessagingError(Exception):

    status_code = 500
    kind = "error"
    default_message = "Unexpected error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, str]:
        return {"error": self.kind, "message": self.message}


class ValidationError(MessagingError):
    """Bad input; the message is shown to the user as is."""

    status_code = 400
    kind = "validation_error"
    default_message = "Invalid input"


class PolicyError(MessagingError):

    status_code = 403
    kind = "policy_violation"
    default_message = "Invalid message interaction. Students can only message alumni and vice versa."

    def __init__(self, message: Optional[str] = None) -> None:
        # never leak which rule rejected the pair
        super().__init__(None)


class NotFoundError(MessagingError):

    status_code = 404
    kind = "not_found"
    default_message = "User not found"


class AuthError(MessagingError):
    """Missing, invalid or expired credential. Always rendered the same way."""

    status_code = 401
    kind = "unauthorized"
    default_message = "Invalid or missing credentials"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(None)


class StorageError(MessagingError):

    status_code = 500
    kind = "storage_error"
    default_message = "Storage is temporarily unavailable. Please retry."

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(None)


ERROR_KINDS: Dict[str, Type[MessagingError]] = {
    cls.kind: cls for cls in (ValidationError, PolicyError, NotFoundError, AuthError, StorageError)
}


def error_from_payload(payload: Dict[str, str], status_code: int) -> MessagingError:
    """Rebuild a MessagingError from an API error body."""
    cls = ERROR_KINDS.get(payload.get("error", ""))
    if cls is None:
        err = MessagingError(payload.get("message"))
        err.status_code = status_code
        return err
    return cls(payload.get("message"))
