from collections.abc import Callable
from datetime import datetime, timezone

from app.auth.authenticator import Authenticator
from app.auth.exceptions import AuthError
from app.config.settings import Settings
from app.database.connection import get_connection
from app.database.repositories.shared_documents_repository import SharedDocumentsRepository
from app.database.repositories.user_repository import UserRepository
from app.ingestion.exceptions import ValidationError
from app.ingestion.orchestrator import ConnectionFactory
from app.logging.logger import Log
from app.sharing.models import SharedDocuments


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SharedDocumentsService:
    """Resolves a share token into the member's shared prescriptions and reports."""

    INVALID_TOKEN = "Invalid token"
    EXPIRED_TOKEN = "Token has expired"

    def __init__(
        self,
        *,
        repo: SharedDocumentsRepository,
        authenticator: Authenticator,
        connection_factory: ConnectionFactory,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repo = repo
        self._authenticator = authenticator
        self._connection_factory = connection_factory
        self._clock = clock

    def fetch_shared_documents(self, token: str | None) -> SharedDocuments:
        """Load shared documents for a share token.

        Raises:
            ValidationError: token missing.
            AuthError: token unknown or expired.
        """
        if not token or not isinstance(token, str):
            raise ValidationError("Token is required")

        with self._connection_factory() as conn:
            share = self._repo.find_share_token(conn, token)
            if share is None:
                raise AuthError(self.INVALID_TOKEN)

            expires_at = share.expires_at
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
            expires_in_seconds = int((expires_at - self._clock()).total_seconds())
            if expires_in_seconds <= 0:
                raise AuthError(self.EXPIRED_TOKEN)

            prescriptions = self._repo.list_shared_prescriptions(conn, share.user_id)
            standalone_reports = self._repo.list_standalone_reports(conn, share.user_id)

        Log.info(
            f"Shared documents for user {share.user_id}: {len(prescriptions)} prescriptions, "
            f"{len(standalone_reports)} standalone reports"
        )
        return SharedDocuments(
            access_token=self._authenticator.issue_token(share.user_id, expires_in_seconds),
            expires_in_seconds=expires_in_seconds,
            prescriptions=prescriptions,
            standalone_reports=standalone_reports,
        )


def build_shared_documents_service(
    settings: Settings,
    connection_factory: ConnectionFactory = get_connection,
) -> SharedDocumentsService:
    """Build a SharedDocumentsService signing file tokens with jwt_secret."""
    return SharedDocumentsService(
        repo=SharedDocumentsRepository(),
        authenticator=Authenticator(settings.jwt_secret, UserRepository()),
        connection_factory=connection_factory,
    )
