from typing import Any

from app.auth.authenticator import Authenticator
from app.config.settings import Settings
from app.database.connection import get_connection
from app.database.repositories.user_repository import UserRepository
from app.imaging.derivatives import DerivativeGenerator
from app.imaging.exceptions import DecodeError
from app.ingestion.exceptions import StorageError, ValidationError
from app.ingestion.models import ImageUpload
from app.ingestion.orchestrator import ConnectionFactory
from app.ingestion.validation import require_positive_id, validate_batch
from app.logging.logger import Log
from app.storage.exceptions import FileStoreError
from app.storage.file_store import DerivativeStore, StagedWrites


class ProfileImageService:
    """Replaces a member's profile picture with a normalized PNG derivative."""

    def __init__(
        self,
        *,
        authenticator: Authenticator,
        user_repo: UserRepository,
        generator: DerivativeGenerator,
        store: DerivativeStore,
        connection_factory: ConnectionFactory,
        max_file_size_bytes: int = 10 * 1024 * 1024,
    ) -> None:
        self._authenticator = authenticator
        self._user_repo = user_repo
        self._generator = generator
        self._store = store
        self._connection_factory = connection_factory
        self._max_file_size_bytes = max_file_size_bytes

    def replace_profile_image(
        self,
        upload: ImageUpload,
        member_id: int | str,
        *,
        access_token: str | None,
    ) -> str:
        """Store the new picture, point the profile at it, then drop the old file.

        Returns:
            The stored public path of the new picture.
        """
        user_id = require_positive_id(member_id, "member_id")
        validate_batch([upload], max_files=1, max_file_size_bytes=self._max_file_size_bytes)

        with self._connection_factory() as conn:
            auth = self._authenticator.authenticate(conn, access_token, user_id)
            try:
                derivatives = self._generator.generate(
                    upload.content, upload.media_type, user_id, upload.original_name
                )
            except DecodeError as exc:
                raise ValidationError("Uploaded file is not a valid image.") from exc

            writes: StagedWrites | None = None
            try:
                writes = self._store.begin()
                staged = writes.stage(derivatives.normalized)
                self._user_repo.update_profile_image(conn, user_id, staged.public_path)
                writes.promote()
                conn.commit()
            except Exception as exc:
                self._revert(conn, writes)
                Log.exception(f"Profile image update for user {user_id} failed: {exc}")
                raise StorageError(str(exc)) from exc

        previous = auth.profile.profile_image_url if auth.profile else None
        if previous and previous != staged.public_path:
            self._remove_previous(previous)
        Log.info(f"Profile image of user {user_id} set to {staged.public_path}")
        return staged.public_path

    def _remove_previous(self, public_path: str) -> None:
        try:
            self._store.remove(public_path)
        except FileStoreError as exc:
            Log.error(f"Failed to delete previous profile image {public_path}: {exc}")

    @staticmethod
    def _revert(conn: Any, writes: StagedWrites | None) -> None:
        try:
            conn.rollback()
        except Exception as exc:  # noqa: BLE001
            Log.error(f"Rollback failed: {exc}")
        if writes is not None:
            writes.discard()


def build_profile_service(
    settings: Settings,
    connection_factory: ConnectionFactory = get_connection,
) -> ProfileImageService:
    """Build a ProfileImageService writing into the profiles collection."""
    return ProfileImageService(
        authenticator=Authenticator(settings.jwt_secret, UserRepository()),
        user_repo=UserRepository(),
        generator=DerivativeGenerator(thumbnail_max_size=settings.thumbnail_max_size),
        store=DerivativeStore(settings.profiles_dir, settings.profiles_url_prefix),
        connection_factory=connection_factory,
        max_file_size_bytes=settings.max_file_size_bytes,
    )
