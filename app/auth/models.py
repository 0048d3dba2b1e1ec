from dataclasses import dataclass, field
from typing import Any

from app.database.models import UserProfile


@dataclass(frozen=True)
class AuthContext:
    """Verified caller identity for one request.

    Attributes:
        identity: Decoded access-token claims.
        profile: Profile row of the member the request acts on.
    """

    identity: dict[str, Any] = field(default_factory=dict)
    profile: UserProfile | None = None

    @property
    def user_id(self) -> int | None:
        value = self.identity.get("userId")
        return int(value) if value is not None else None
