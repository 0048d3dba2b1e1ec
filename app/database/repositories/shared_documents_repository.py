from collections import defaultdict
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row

from app.database.models import ShareToken, SharedImage, SharedPrescription, SharedReport


class SharedDocumentsRepository:
    """Read-only queries behind the shared-documents view."""

    def find_share_token(self, conn: psycopg.Connection[Any], token: str) -> ShareToken | None:
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                "SELECT user_id, expires_at FROM token WHERE token = %s",
                (token,),
            )
            row = cur.fetchone()
        if row is None:
            return None
        return ShareToken(user_id=row["user_id"], expires_at=row["expires_at"])

    def list_shared_prescriptions(
        self,
        conn: psycopg.Connection[Any],
        user_id: int,
    ) -> list[SharedPrescription]:
        """Shared prescriptions, newest first, each with its images and shared reports."""
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                """
                SELECT id, title, department, doctor_name, visited_date, created_at
                FROM prescriptions
                WHERE user_id = %s AND shared = true AND deleted = false
                ORDER BY created_at DESC
                """,
                (user_id,),
            )
            rows = cur.fetchall()
        prescriptions = [
            SharedPrescription(
                id=row["id"],
                title=row["title"],
                department=row["department"],
                doctor_name=row["doctor_name"],
                visited_date=row["visited_date"],
                created_at=row["created_at"],
            )
            for row in rows
        ]
        if not prescriptions:
            return []
        prescription_ids = [p.id for p in prescriptions]
        images = self._images_by_parent(
            conn, "prescription_images", "prescription_id", prescription_ids
        )

        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                """
                SELECT id, title, test_name, delivery_date, prescription_id, created_at
                FROM reports
                WHERE prescription_id = ANY(%s) AND user_id = %s
                  AND shared = true AND deleted = false
                ORDER BY created_at DESC
                """,
                (prescription_ids, user_id),
            )
            report_rows = cur.fetchall()
        reports = self._build_reports(conn, report_rows)

        reports_by_prescription: dict[int, list[SharedReport]] = defaultdict(list)
        for report in reports:
            if report.prescription_id is not None:
                reports_by_prescription[report.prescription_id].append(report)

        for prescription in prescriptions:
            prescription.images = images.get(prescription.id, [])
            prescription.reports = reports_by_prescription.get(prescription.id, [])
        return prescriptions

    def list_standalone_reports(
        self,
        conn: psycopg.Connection[Any],
        user_id: int,
    ) -> list[SharedReport]:
        """Shared reports not linked to any prescription, newest first."""
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                """
                SELECT id, title, test_name, delivery_date, prescription_id, created_at
                FROM reports
                WHERE prescription_id IS NULL AND user_id = %s
                  AND shared = true AND deleted = false
                ORDER BY created_at DESC
                """,
                (user_id,),
            )
            rows = cur.fetchall()
        return self._build_reports(conn, rows)

    def _build_reports(
        self,
        conn: psycopg.Connection[Any],
        rows: list[dict[str, Any]],
    ) -> list[SharedReport]:
        reports = [
            SharedReport(
                id=row["id"],
                title=row["title"],
                test_name=row["test_name"],
                delivery_date=row["delivery_date"],
                prescription_id=row["prescription_id"],
                created_at=row["created_at"],
            )
            for row in rows
        ]
        images = self._images_by_parent(
            conn, "report_images", "report_id", [r.id for r in reports]
        )
        for report in reports:
            report.images = images.get(report.id, [])
        return reports

    @staticmethod
    def _images_by_parent(
        conn: psycopg.Connection[Any],
        table: str,
        parent_column: str,
        parent_ids: list[int],
    ) -> dict[int, list[SharedImage]]:
        if not parent_ids:
            return {}
        query = sql.SQL(
            "SELECT {parent} AS parent_id, id, resiged, thumb FROM {table} "
            "WHERE {parent} = ANY(%s) AND deleted = false "
            "ORDER BY created_at ASC, id ASC"
        ).format(parent=sql.Identifier(parent_column), table=sql.Identifier(table))
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(query, (parent_ids,))
            rows = cur.fetchall()
        grouped: dict[int, list[SharedImage]] = defaultdict(list)
        for row in rows:
            grouped[row["parent_id"]].append(
                SharedImage(id=row["id"], normalized_path=row["resiged"], thumbnail_path=row["thumb"])
            )
        return grouped
