from app.ingestion.exceptions import IngestionError


class AuthError(IngestionError):
    """Raised when an access token is missing, invalid or expired, or the member is unknown."""

    TOKEN_REQUIRED = "Access token is required."
    TOKEN_INVALID = "Invalid or expired access token."
    INVALID_USER = "Invalid user."
