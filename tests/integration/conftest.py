import os
from collections.abc import Generator
from typing import Any

import psycopg
import pytest

from app.config.settings import Settings
from app.database.connection import close_pool, get_connection, init_pool

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    user_id SERIAL PRIMARY KEY,
    profile_image_url TEXT
);
CREATE TABLE IF NOT EXISTS prescriptions (
    id SERIAL PRIMARY KEY,
    user_id INTEGER NOT NULL REFERENCES users (user_id),
    title TEXT,
    department TEXT,
    doctor_name TEXT,
    visited_date DATE,
    shared BOOLEAN NOT NULL DEFAULT false,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    deleted BOOLEAN NOT NULL DEFAULT false
);
CREATE TABLE IF NOT EXISTS prescription_images (
    id SERIAL PRIMARY KEY,
    prescription_id INTEGER NOT NULL REFERENCES prescriptions (id),
    resiged TEXT NOT NULL,
    thumb TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    deleted BOOLEAN NOT NULL DEFAULT false
);
CREATE TABLE IF NOT EXISTS reports (
    id SERIAL PRIMARY KEY,
    user_id INTEGER NOT NULL REFERENCES users (user_id),
    title TEXT,
    prescription_id INTEGER REFERENCES prescriptions (id),
    test_name TEXT,
    delivery_date DATE,
    normal_or_not TEXT,
    shared BOOLEAN NOT NULL DEFAULT false,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    deleted BOOLEAN NOT NULL DEFAULT false
);
CREATE TABLE IF NOT EXISTS report_images (
    id SERIAL PRIMARY KEY,
    report_id INTEGER NOT NULL REFERENCES reports (id),
    resiged TEXT NOT NULL,
    thumb TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    deleted BOOLEAN NOT NULL DEFAULT false
);
CREATE TABLE IF NOT EXISTS token (
    token TEXT PRIMARY KEY,
    user_id INTEGER NOT NULL REFERENCES users (user_id),
    expires_at TIMESTAMPTZ NOT NULL
);
"""


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "medidoc_test")
    return Settings(jwt_secret="integration-secret", classification_provider="example")


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        with get_connection() as conn:
            conn.execute(_SCHEMA)
            conn.commit()
    except Exception as e:
        close_pool()
        pytest.skip(
            f"PostgreSQL test DB not available: {e}. "
            "Set DB_* env to point at a disposable database"
        )
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def seed_user(db_conn: psycopg.Connection[Any]) -> Generator[int, None, None]:
    with db_conn.cursor() as cur:
        cur.execute("INSERT INTO users (profile_image_url) VALUES (NULL) RETURNING user_id")
        row = cur.fetchone()
        assert row is not None
        user_id = int(row[0])
    db_conn.commit()
    try:
        yield user_id
    finally:
        with db_conn.cursor() as cur:
            cur.execute(
                "DELETE FROM report_images WHERE report_id IN "
                "(SELECT id FROM reports WHERE user_id = %s)",
                (user_id,),
            )
            cur.execute("DELETE FROM reports WHERE user_id = %s", (user_id,))
            cur.execute(
                "DELETE FROM prescription_images WHERE prescription_id IN "
                "(SELECT id FROM prescriptions WHERE user_id = %s)",
                (user_id,),
            )
            cur.execute("DELETE FROM prescriptions WHERE user_id = %s", (user_id,))
            cur.execute("DELETE FROM token WHERE user_id = %s", (user_id,))
            cur.execute("DELETE FROM users WHERE user_id = %s", (user_id,))
        db_conn.commit()
