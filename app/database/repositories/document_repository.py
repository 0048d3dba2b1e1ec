from collections.abc import Mapping
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row

from app.ingestion.fields import DocumentSchema


class DocumentRepository:
    """Database operations for document tables (prescriptions, reports) and their images.

    Every method runs on the caller's connection and never commits: the
    caller owns the transaction.
    """

    def find_owner(
        self,
        conn: psycopg.Connection[Any],
        schema: DocumentSchema,
        document_id: int,
    ) -> int | None:
        """Return the owning user_id of a live (not deleted) document, or None."""
        query = sql.SQL(
            "SELECT user_id FROM {table} WHERE id = %s AND deleted = false"
        ).format(table=sql.Identifier(schema.table))
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(query, (document_id,))
            row = cur.fetchone()
        if row is None:
            return None
        return int(row["user_id"])

    def insert_document(
        self,
        conn: psycopg.Connection[Any],
        schema: DocumentSchema,
        owner_id: int,
        values: Mapping[str, Any],
    ) -> int:
        """Insert a document row with user_id plus only the supplied columns.

        Returns:
            The new document id.
        """
        columns = ["user_id", *values]
        params = [owner_id, *values.values()]
        query = sql.SQL(
            "INSERT INTO {table} ({columns}, created_at) "
            "VALUES ({placeholders}, NOW()) RETURNING id"
        ).format(
            table=sql.Identifier(schema.table),
            columns=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
            placeholders=sql.SQL(", ").join(sql.Placeholder() for _ in columns),
        )
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(query, params)
            row = cur.fetchone()
        if row is None:
            raise RuntimeError(f"INSERT into {schema.table} returned no id")
        return int(row["id"])

    def insert_image(
        self,
        conn: psycopg.Connection[Any],
        schema: DocumentSchema,
        document_id: int,
        normalized_path: str,
        thumbnail_path: str,
    ) -> int:
        """Insert one image row for a document and return its id."""
        query = sql.SQL(
            "INSERT INTO {table} ({parent}, {normalized}, {thumbnail}, created_at) "
            "VALUES (%s, %s, %s, NOW()) RETURNING id"
        ).format(
            table=sql.Identifier(schema.image_table),
            parent=sql.Identifier(schema.image_parent_column),
            normalized=sql.Identifier(schema.normalized_column),
            thumbnail=sql.Identifier(schema.thumbnail_column),
        )
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(query, (document_id, normalized_path, thumbnail_path))
            row = cur.fetchone()
        if row is None:
            raise RuntimeError(f"INSERT into {schema.image_table} returned no id")
        return int(row["id"])
