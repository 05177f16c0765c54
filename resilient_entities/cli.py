"""Inspect and reset the locally persisted fallback data.

Usage:
    resilient-entities entities
    resilient-entities show material --order-by updated_date --desc --limit 20
    resilient-entities show shiftlog --offline-only
    resilient-entities clear material
    resilient-entities uploads
    resilient-entities forget-upload upload_lq2x8k1c0f3ab9z
    resilient-entities token

A leading '-' on the field also sorts descending, but argparse needs the
value attached to the option then: --order-by=-updated_date.

The client configuration is read from the environment, optionally layered
over a YAML settings file given with --config.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import TextIO

from .config import ClientConfig
from .exceptions import ConfigurationError
from .id_utils import is_fallback_id
from .logging_utils import configure_structured_logging, get_client_logger
from .query import sort_records
from .storage.kv import create_store
from .storage.mirror import FallbackMirror
from .storage.uploads import UploadsMap

logger = get_client_logger("cli")


def _load_config(path: Path | None) -> ClientConfig:
    if path is not None:
        return ClientConfig.from_file(path)
    return ClientConfig.from_environment()


def _order_by(field: str | None, descending: bool) -> str | None:
    if field and descending and not field.startswith("-"):
        return f"-{field}"
    return field


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="resilient-entities",
        description="Inspect the fallback mirror and uploads map",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Which entities have mirrored records?
    resilient-entities entities

    # Newest first; records created offline are the ones with tmp_ ids
    resilient-entities show shiftlog --order-by created_date --desc
    resilient-entities show shiftlog --offline-only

    # Use a specific settings file
    resilient-entities --config ./settings.yaml uploads
        """,
    )
    parser.add_argument("--config", type=Path, help="YAML settings file")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("entities", help="List mirrored entities and record counts")

    show = sub.add_parser("show", help="Print mirrored records of one entity")
    show.add_argument("entity")
    show.add_argument(
        "--order-by", default=None, help="Field to sort by (--order-by=-field for descending)"
    )
    show.add_argument("--desc", action="store_true", help="Sort descending")
    show.add_argument("--limit", type=int, default=None)
    show.add_argument(
        "--offline-only", action="store_true", help="Only records created while offline"
    )

    clear = sub.add_parser("clear", help="Forget mirrored records")
    clear.add_argument("entity", nargs="?", default=None, help="Entity (default: all)")

    sub.add_parser("uploads", help="List locally stored uploads")
    forget = sub.add_parser("forget-upload", help="Drop one locally stored upload")
    forget.add_argument("upload_id")

    sub.add_parser("token", help="Show whether a bearer token is stored")
    return parser


def run(args: argparse.Namespace, out: TextIO | None = None) -> int:
    if out is None:
        out = sys.stdout
    try:
        config = _load_config(args.config)
    except ConfigurationError as e:
        logger.error(str(e))
        return 2

    store = create_store(config)
    mirror = FallbackMirror(store, key=config.mirror_key)
    uploads = UploadsMap(store, key=config.uploads_key)

    if args.command == "entities":
        for name in mirror.entities():
            print(f"{name}\t{len(mirror.read_list(name))}", file=out)
    elif args.command == "show":
        records = mirror.read_list(args.entity)
        if args.offline_only:
            records = [r for r in records if is_fallback_id(r.get("id"))]
        records = sort_records(records, _order_by(args.order_by, args.desc))
        if args.limit:
            records = records[: args.limit]
        print(json.dumps(records, indent=2, default=str), file=out)
    elif args.command == "clear":
        mirror.clear(args.entity)
        logger.info(f"Cleared fallback mirror{' for ' + args.entity if args.entity else ''}")
    elif args.command == "uploads":
        for upload_id in uploads.list_ids():
            entry = uploads.get(upload_id) or {}
            print(
                f"{upload_id}\t{entry.get('file_name', '')}\t"
                f"{entry.get('mime_type', '')}\t{entry.get('created_at', '')}",
                file=out,
            )
    elif args.command == "forget-upload":
        if uploads.get(args.upload_id) is None:
            logger.error(f"No locally stored upload {args.upload_id}")
            return 1
        uploads.remove(args.upload_id)
        logger.info(f"Forgot local upload {args.upload_id}")
    elif args.command == "token":
        print("stored" if store.get(config.token_key) else "none", file=out)

    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.json_logs:
        configure_structured_logging(logging.INFO)
    else:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s  %(message)s")
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
