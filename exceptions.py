from fastapi import HTTPException, status


class RankTableError(ValueError):
    """Raised when a rank table breaks ordering or uniqueness rules."""


class InvalidPostCountError(ValueError):
    """Raised when a post count is not an integer."""


class Exceptions:
    UNAUTHORIZED = HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid credentials")
    ADMIN_REQUIRED = HTTPException(status.HTTP_403_FORBIDDEN, "Admin privileges required")
    USER_NOT_FOUND = HTTPException(status.HTTP_404_NOT_FOUND, "User not found")
    RANK_NOT_FOUND = HTTPException(status.HTTP_404_NOT_FOUND, "Rank not found")
    RANK_EXISTS = HTTPException(status.HTTP_409_CONFLICT, "A rank with that name already exists")
    INVALID_RANK_TABLE = HTTPException(status.HTTP_409_CONFLICT, "Change would leave the active rank ladder invalid")
    NO_FIELDS = HTTPException(status.HTTP_400_BAD_REQUEST, "No valid fields to update")
