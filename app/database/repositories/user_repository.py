from typing import Any

import psycopg
from psycopg.rows import dict_row

from app.database.models import UserProfile


class UserRepository:
    """Database operations for the users table."""

    def find_profile(self, conn: psycopg.Connection[Any], user_id: int) -> UserProfile | None:
        """Find a user's profile by user_id."""
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                "SELECT user_id, profile_image_url FROM users WHERE user_id = %s",
                (user_id,),
            )
            row = cur.fetchone()

        if row is None:
            return None

        return UserProfile(
            user_id=row["user_id"],
            profile_image_url=row["profile_image_url"],
        )

    def update_profile_image(
        self,
        conn: psycopg.Connection[Any],
        user_id: int,
        profile_image_url: str,
    ) -> None:
        """Point a user's profile at a new image. Does not commit."""
        with conn.cursor() as cur:
            cur.execute(
                "UPDATE users SET profile_image_url = %s WHERE user_id = %s",
                (profile_image_url, user_id),
            )
            if cur.rowcount == 0:
                raise LookupError(f"User {user_id} not found")
