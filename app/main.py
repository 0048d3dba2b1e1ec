import argparse
import dataclasses
import json
import mimetypes
import sys
from pathlib import Path
from typing import Any

from app.config.settings import Settings
from app.database.connection import close_pool, init_pool
from app.ingestion.exceptions import IngestionError, RejectionError, StorageError
from app.ingestion.models import ImageUpload
from app.ingestion.orchestrator import build_orchestrator
from app.logging.logger import Log
from app.profile.service import build_profile_service
from app.sharing.service import build_shared_documents_service


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="medidoc",
        description="Ingest scanned medical documents as prescriptions or reports.",
    )
    parser.add_argument("--token", help="Member access token (JWT)")
    parser.add_argument("--member", help="Acting member id")
    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest = subparsers.add_parser("ingest", help="Create a new document from images")
    ingest.add_argument("kind", choices=["prescription", "report"])
    ingest.add_argument("files", nargs="+", type=Path)
    ingest.add_argument(
        "--field",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Explicit document field, may be repeated",
    )

    append = subparsers.add_parser("append", help="Append images to an existing document")
    append.add_argument("kind", choices=["prescription", "report"])
    append.add_argument("document_id")
    append.add_argument("files", nargs="+", type=Path)

    profile = subparsers.add_parser("profile", help="Replace the member's profile image")
    profile.add_argument("file", type=Path)

    shared = subparsers.add_parser("shared", help="List documents shared under a share token")
    shared.add_argument("share_token")
    return parser


def read_uploads(paths: list[Path]) -> list[ImageUpload]:
    uploads = []
    for path in paths:
        media_type, _ = mimetypes.guess_type(path.name)
        uploads.append(
            ImageUpload(
                content=path.read_bytes(),
                media_type=media_type or "application/octet-stream",
                original_name=path.name,
            )
        )
    return uploads


def parse_field_args(pairs: list[str]) -> dict[str, str]:
    fields: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise argparse.ArgumentTypeError(f"Expected KEY=VALUE, got {pair!r}")
        fields[key.strip()] = value
    return fields


def _dump(payload: Any) -> str:
    if dataclasses.is_dataclass(payload):
        payload = dataclasses.asdict(payload)
    return json.dumps(payload, indent=2, default=str)


def run_command(args: argparse.Namespace, settings: Settings, uploads: list[ImageUpload]) -> Any:
    """Dispatch one parsed command to its service and return the printable result."""
    if args.command == "shared":
        return build_shared_documents_service(settings).fetch_shared_documents(args.share_token)
    if args.command == "profile":
        public_path = build_profile_service(settings).replace_profile_image(
            uploads[0], args.member, access_token=args.token
        )
        return {"profile_image_url": public_path}
    orchestrator = build_orchestrator(settings)
    if args.command == "ingest":
        return orchestrator.ingest_new_document(
            uploads, args.kind, parse_field_args(args.field), args.member, access_token=args.token
        )
    return orchestrator.ingest_append_images(
        uploads, args.kind, args.document_id, args.member, access_token=args.token
    )


def main(argv: list[str] | None = None) -> int:
    """Entry point: parse args -> initialize pool -> build service -> run command."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command != "shared" and not (args.token and args.member):
        parser.error(f"--token and --member are required for {args.command}")
    try:
        parse_field_args(getattr(args, "field", []))
    except argparse.ArgumentTypeError as exc:
        parser.error(str(exc))
    paths = [args.file] if args.command == "profile" else getattr(args, "files", [])
    try:
        uploads = read_uploads(paths)
    except OSError as exc:
        parser.error(f"Cannot read input file: {exc}")

    settings = Settings()
    Log.configure(settings.log_level)
    init_pool(settings)

    try:
        print(_dump(run_command(args, settings, uploads)))
        return 0
    except RejectionError as exc:
        invalid_files = [dataclasses.asdict(f) for f in exc.report.invalid_files]
        print(_dump({"error": str(exc), "invalid_files": invalid_files}))
        return 2
    except StorageError as exc:
        Log.error(f"{args.command} failed: {exc.detail}")
        print(_dump({"error": str(exc)}))
        return 1
    except IngestionError as exc:
        print(_dump({"error": str(exc)}))
        return 1
    finally:
        close_pool()


if __name__ == "__main__":
    sys.exit(main())
