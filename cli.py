#!/usr/bin/env python3
"""FileVault CLI - Unified command-line interface for all operations."""
import argparse
import logging
import sys


def setup_logging(log_level: str):
    """Configure logging for the CLI."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def build_vault(db):
    """Vault wired from the global configuration."""
    from filevault.config import Config
    from filevault.core import FileVault
    from filevault.core.quota import MB
    from filevault.storage import FilesystemStorage, S3Storage

    if Config.S3_BUCKET:
        storage = S3Storage(max_attempts=Config.STORAGE_MAX_ATTEMPTS)
    else:
        storage = FilesystemStorage(base_path=Config.STORAGE_BASE_PATH,
                                    max_attempts=Config.STORAGE_MAX_ATTEMPTS)

    return FileVault(
        db,
        storage,
        quota_limit_bytes=Config.STORAGE_QUOTA_MB * MB,
        legacy_storage=FilesystemStorage(base_path=Config.LEGACY_UPLOAD_PATH),
        max_upload_bytes=Config.MAX_UPLOAD_SIZE_MB * MB,
        base_url=Config.BASE_URL,
    )


def cmd_serve(args):
    """Start the HTTP API server."""
    from filevault.app import app
    from filevault.config import Config

    setup_logging(args.log_level)

    host = args.host or '0.0.0.0'
    port = args.port or Config.PORT
    debug = args.debug if args.debug is not None else Config.DEBUG

    logger = logging.getLogger(__name__)
    logger.info(f"Starting FileVault API on {host}:{port}")

    app.run(debug=debug, host=host, port=port)


def cmd_init_db(args):
    """Create all tables."""
    from filevault.config import Config
    from filevault.models.base import init_db

    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)
    logger.info(f"Creating tables at {Config.DATABASE_URL}")
    init_db(Config.DATABASE_URL)


def cmd_quota(args):
    """Print a user's quota usage."""
    from filevault.config import Config
    from filevault.models.base import create_session

    setup_logging(args.log_level)
    db = create_session(Config.DATABASE_URL)
    try:
        usage = build_vault(db).get_quota_usage(args.user_id)
        print(f"User:      {args.user_id}")
        print(f"Used:      {usage.used_bytes} bytes")
        print(f"Limit:     {usage.limit_bytes} bytes")
        print(f"Remaining: {usage.remaining_bytes} bytes ({usage.usage_percentage:.1f}% used)")
    finally:
        db.close()


def cmd_orphans(args):
    """
    List blobs no file references any more.

    Nothing is deleted: reclaiming unreferenced content is a decision for
    the operators, and this report is the input to it.
    """
    from filevault.config import Config
    from filevault.models.base import create_session

    setup_logging(args.log_level)
    db = create_session(Config.DATABASE_URL)
    try:
        orphans = build_vault(db).find_orphan_blobs()
        total = 0
        for blob in orphans:
            total += blob.size
            print(f"{blob.content_hash}  {blob.size:>12}  {blob.storage_kind.value}:{blob.storage_key}")
        print(f"{len(orphans)} unreferenced blobs, {total} bytes")
    finally:
        db.close()


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description='FileVault - multi-user file vault with deduplicated storage',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create the database schema
  %(prog)s init-db

  # Start the API server
  %(prog)s serve --port 8080

  # Show a user's storage usage
  %(prog)s quota alice

  # Report blobs with no remaining file references
  %(prog)s orphans
"""
    )

    # Global options
    parser.add_argument(
        '--log-level',
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Set the logging level (default: INFO)'
    )

    # Create subparsers for commands
    subparsers = parser.add_subparsers(
        dest='command',
        help='Available commands',
        required=True
    )

    serve_parser = subparsers.add_parser('serve', help='Start the HTTP API server')
    serve_parser.add_argument('--host', help='Host to bind to (default: 0.0.0.0)')
    serve_parser.add_argument('--port', type=int, help='Port to bind to (default: from config)')
    serve_parser.add_argument(
        '--debug',
        action='store_true',
        default=None,
        help='Enable debug mode'
    )
    serve_parser.set_defaults(func=cmd_serve)

    init_parser = subparsers.add_parser('init-db', help='Create database tables')
    init_parser.set_defaults(func=cmd_init_db)

    quota_parser = subparsers.add_parser('quota', help="Show a user's storage usage")
    quota_parser.add_argument('user_id', help='User to report on')
    quota_parser.set_defaults(func=cmd_quota)

    orphans_parser = subparsers.add_parser('orphans', help='List blobs with no file references')
    orphans_parser.set_defaults(func=cmd_orphans)

    args = parser.parse_args()
    args.func(args)


if __name__ == '__main__':
    sys.exit(main())
