"""Split child profiles that act as guardians into a guardian and a child.

Reads store credentials from a local env file (``.env.local`` next to the
backend by default), probes connectivity, then runs the batch and prints a
JSON summary. Exits 1 when the env file is missing, the credentials are
incomplete, or the initial scan fails; individual candidate failures are
reported in the summary only.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from academy.config import Settings, get_settings, load_env_file
from academy.guardian_migration import (
    MigrationOptions,
    build_migration_collaborators,
    run_guardian_migration,
)
from academy.repositories import StoreError, SupabaseMemberStore, create_anon_client

LOGGER = logging.getLogger("academy.migrate_guardians")
SCRIPT_DIR = Path(__file__).resolve().parent
BACKEND_ROOT = SCRIPT_DIR.parent
DEFAULT_ENV_FILE = BACKEND_ROOT / ".env.local"


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Retrospectively split child profiles that act as guardians.")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=DEFAULT_ENV_FILE,
        help=f"KEY=value file holding the store credentials (default: {DEFAULT_ENV_FILE}).",
    )
    parser.add_argument(
        "--restore-guardian-names",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Restore the guardian's name from identity metadata after conversion.",
    )
    parser.add_argument(
        "--repair-partial",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Finish guardians whose earlier migration stopped before conversion (default: on).",
    )
    parser.add_argument("--dry-run", action="store_true", help="List candidates without changing anything.")
    return parser.parse_args(argv)


def probe_connection(settings: Settings) -> None:
    """Check the anon key can reach the store; failure is only logged."""
    client = create_anon_client(settings)
    if client is None:
        LOGGER.info("No anon key configured; skipping connection probe.")
        return
    LOGGER.info("Testing connection with anon key...")
    try:
        SupabaseMemberStore(client).ping()
    except StoreError as exc:
        LOGGER.error("Anon connection failed: %s", exc)
        return
    LOGGER.info("Anon connection successful.")


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    args = parse_args(argv)

    LOGGER.info("Loading env from: %s", args.env_file)
    try:
        load_env_file(args.env_file)
    except FileNotFoundError as exc:
        LOGGER.error("%s", exc)
        return 1

    get_settings.cache_clear()
    settings = get_settings()
    restore_default = args.restore_guardian_names
    options = MigrationOptions.from_settings(
        settings,
        restore_guardian_names=bool(restore_default),
        repair_partial=args.repair_partial,
        dry_run=args.dry_run,
    )
    if restore_default is not None:
        options.restore_guardian_names = restore_default

    try:
        store, identities = build_migration_collaborators(settings)
        probe_connection(settings)
        LOGGER.info("Using Supabase URL: %s", settings.supabase_url)
        report = run_guardian_migration(store, identities, options)
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("Guardian migration aborted: %s", exc)
        return 1

    LOGGER.info(
        "Migration finished. Processed %d of %d candidate(s), %d failed.",
        report.migrated_count,
        report.candidate_count,
        report.failed_count,
    )
    print(json.dumps(report.payload(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
