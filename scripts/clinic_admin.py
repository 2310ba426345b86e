#!/usr/bin/env python3
"""
Admin commands for the clinic Supabase project
Print the bootstrap schema, seed demo data, reset all tables, or export a SQL backup
"""

import sys
import asyncio
import logging
import argparse
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv(project_root / ".env")

from clinic_ops.config.schema import SCHEMA_SQL
from clinic_ops.config.settings import get_settings
from clinic_ops.exceptions import ClinicError
from clinic_ops.logging_conf import configure_logging
from clinic_ops.services.auth import ClinicAuth
from clinic_ops.services.backup import export_to_sql, reset_database, seed_database
from clinic_ops.services.store import ClinicStore
from clinic_ops.services.supabase_client import create_supabase_client

logger = logging.getLogger("clinic_admin")


async def open_store(args: argparse.Namespace) -> ClinicStore:
    settings = get_settings()
    client = await create_supabase_client(settings)
    auth = None
    if args.email:
        auth = ClinicAuth(client)
        await auth.sign_in(args.email, args.password or "")
    store = ClinicStore(client, auth=auth)
    await store.refresh()
    if store.setup_required:
        raise ClinicError("Database tables are missing, run the output of 'clinic_admin.py schema' first")
    return store


def serve(host: str, port: int, reload: bool) -> int:
    """Run the clinic API under uvicorn"""
    import uvicorn

    logger.info(f"🚀 Starting clinic API on {host}:{port}")
    logger.info(f"📊 Health check: http://{host}:{port}/")
    uvicorn.run("clinic_ops.api:app", host=host, port=port, reload=reload, log_level="info")
    return 0


async def run_command(args: argparse.Namespace) -> int:
    if args.command == "schema":
        print(SCHEMA_SQL)
        return 0

    if args.command == "reset" and not args.yes:
        logger.error("❌ Reset deletes every clinic record, re-run with --yes to confirm")
        return 1

    store = await open_store(args)

    if args.command == "seed":
        await seed_database(store)
        logger.info(f"🎉 Seed completed: {len(store.customers)} customers, {len(store.services)} services")
    elif args.command == "reset":
        await reset_database(store)
        logger.info("🎉 All clinic tables cleared")
    elif args.command == "export":
        sql = export_to_sql(store.snapshot, get_settings().CLINIC_NAME)
        if args.output:
            Path(args.output).write_text(sql, encoding="utf-8")
            logger.info(f"💾 Backup written to {args.output}")
        else:
            sys.stdout.write(sql)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Clinic back office admin commands")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    parser.add_argument("--email", help="Staff account to sign in with")
    parser.add_argument("--password", help="Password for --email")

    subparsers = parser.add_subparsers(dest="command", required=True)
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    serve_parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    subparsers.add_parser("schema", help="Print the SQL that creates the clinic tables")
    subparsers.add_parser("seed", help="Insert demo inventory, services, courses and customers")
    reset_parser = subparsers.add_parser("reset", help="Delete every row of every clinic table")
    reset_parser.add_argument("--yes", action="store_true", help="Confirm the reset")
    export_parser = subparsers.add_parser("export", help="Export customers, inventory, services and courses as SQL")
    export_parser.add_argument("--output", "-o", help="Write to this file instead of stdout")
    return parser


def main() -> int:
    args = build_parser().parse_args()
    settings = get_settings()
    configure_logging(args.log_level or settings.LOG_LEVEL, settings.LOG_JSON)

    if args.command == "serve":
        return serve(args.host, args.port, args.reload)

    try:
        return asyncio.run(run_command(args))
    except ClinicError as e:
        logger.error(f"❌ {e.message}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
