"""
API error taxonomy.

Every pipeline stage and route handler signals failure by raising one of
these.  A single exception handler in ``app.main`` renders them as the
response envelope ``{"success": false, "errors": [...]}`` with the
status code fixed by the error class.
"""
from fastapi import status


class ApiError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Something went wrong."

    def __init__(self, *messages: str) -> None:
        self.errors: list[str] = list(messages) or [self.default_message]
        super().__init__(self.errors[0])

    def to_body(self) -> dict:
        return {"success": False, "errors": self.errors}


class Unauthenticated(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized! You are required to be logged in to perform this operation."


class SessionExpired(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Your session has expired, please login again to continue"


class InvalidCredentials(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid email or password."


class NotVerified(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "User has not been verified."


class InsufficientRole(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized! This operation is reserved for Admin or higher."


class Forbidden(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Unauthorized! You are not allowed to modify this resource."


class ValidationFailed(ApiError):
    status_code = 422
    default_message = "The request could not be validated."


class DuplicateResource(ApiError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "The resource already exists."


class NotFound(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "The requested resource was not found."


class InvalidIdentifier(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid id."


class PersistenceFailure(ApiError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
