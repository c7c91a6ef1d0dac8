"""Error taxonomy shared by the services and the HTTP layer.

Services raise these; `app.py` turns them into `{"detail": message}` responses
with the class status code.
"""


class ChatError(Exception):
    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message


class ValidationError(ChatError):
    status_code = 400


class DuplicateMessageError(ValidationError):
    def __init__(self, message: str = "Duplicate message detected"):
        super().__init__(message)


class AuthError(ChatError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class AuthorizationError(ChatError):
    status_code = 403

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)


class NotFoundError(ChatError):
    status_code = 404


class ConflictError(ChatError):
    status_code = 409


class RateLimitError(ChatError):
    status_code = 429

    def __init__(self, message: str = "Too many requests, please slow down"):
        super().__init__(message)


class InternalError(ChatError):
    status_code = 500


class UserCreationRaceError(InternalError):
    def __init__(self, message: str = "Failed to save user due to a temporary issue, please try again."):
        super().__init__(message)
