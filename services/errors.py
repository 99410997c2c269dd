from typing import Any, Dict, List, Optional


class CommunityError(Exception):
    """Base class for errors surfaced to the HTTP boundary"""

    status_code = 500
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        if message:
            self.message = message

    def to_body(self) -> Dict[str, Any]:
        return {"success": False, "message": self.message}


class AuthRequired(CommunityError):
    status_code = 401
    message = "Authentication required"


class ValidationError(CommunityError):
    status_code = 400
    message = "Invalid request data"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.errors = errors or []

    def to_body(self) -> Dict[str, Any]:
        body = super().to_body()
        body["errors"] = self.errors
        return body


class Forbidden(CommunityError):
    status_code = 403
    message = "You don't have permission to perform this action"


class NotFound(CommunityError):
    status_code = 404
    message = "Not found"


class PersistenceFailure(CommunityError):
    """
    The storage collaborator failed. The message is always generic; the
    original exception is kept as __cause__ for server-side logging.
    """

    status_code = 500
    message = "Something went wrong. Please try again later."
