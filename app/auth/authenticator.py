from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
import psycopg

from app.auth.exceptions import AuthError
from app.auth.models import AuthContext
from app.database.repositories.user_repository import UserRepository
from app.logging.logger import Log


class Authenticator:
    """Verifies HS256 access tokens and loads the member profile they act on."""

    ALGORITHM = "HS256"

    def __init__(self, jwt_secret: str, user_repo: UserRepository) -> None:
        self._jwt_secret = jwt_secret
        self._user_repo = user_repo

    def authenticate(
        self,
        conn: psycopg.Connection[Any],
        token: str | None,
        member_id: int,
    ) -> AuthContext:
        """Decode the token and confirm the member exists.

        Raises:
            AuthError: token missing, invalid or expired, or member not found.
        """
        if not token:
            raise AuthError(AuthError.TOKEN_REQUIRED)
        if not self._jwt_secret:
            Log.error("jwt_secret is not configured, cannot verify access tokens")
            raise AuthError(AuthError.TOKEN_INVALID)
        try:
            claims = jwt.decode(token, self._jwt_secret, algorithms=[self.ALGORITHM])
        except jwt.PyJWTError as exc:
            Log.warning(f"Rejected access token: {exc}")
            raise AuthError(AuthError.TOKEN_INVALID) from exc

        profile = self._user_repo.find_profile(conn, member_id)
        if profile is None:
            raise AuthError(AuthError.INVALID_USER)
        return AuthContext(identity=claims, profile=profile)

    def issue_token(self, user_id: int, expires_in_seconds: int) -> str:
        """Sign a short-lived token granting file access for a user."""
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in_seconds)
        return jwt.encode(
            {"userId": user_id, "exp": expires_at},
            self._jwt_secret,
            algorithm=self.ALGORITHM,
        )
