"""Service-level exceptions, each carrying an HTTP status for the API layer."""


class ServiceError(Exception):
    """Base class for service layer errors."""

    def __init__(self, message="An internal service error occurred.", status_code=500):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class InvalidInputError(ServiceError):
    def __init__(self, message="Invalid input."):
        super().__init__(message, status_code=400)


class BusinessRuleError(ServiceError):
    """For violations of specific business rules (e.g., messaging yourself)."""

    def __init__(self, message="Action violates business rules."):
        super().__init__(message, status_code=400)


class ConversationNotFoundError(ServiceError):
    def __init__(self, message="Conversation not found."):
        super().__init__(message, status_code=404)


class MessageNotFoundError(ServiceError):
    def __init__(self, message="Message not found."):
        super().__init__(message, status_code=404)


class UserNotFoundError(ServiceError):
    def __init__(self, message="User not found."):
        super().__init__(message, status_code=404)


class NotAuthorizedError(ServiceError):
    def __init__(self, message="User not authorized for this action."):
        super().__init__(message, status_code=403)


class BlockedError(NotAuthorizedError):
    def __init__(self, message="This conversation is blocked."):
        super().__init__(message)


class ConflictError(ServiceError):
    """For conflicts like a concurrent duplicate private conversation."""

    def __init__(self, message="Operation conflicts with existing state."):
        super().__init__(message, status_code=409)


class DatabaseError(ServiceError):
    """For general database errors during service operations."""

    def __init__(self, message="A database error occurred."):
        super().__init__(message, status_code=500)


class StoreUnavailableError(ServiceError):
    def __init__(self, message="The data store is currently unavailable."):
        super().__init__(message, status_code=503)
