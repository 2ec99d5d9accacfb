"""Command-line interface for preprint-migrator."""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Iterator

from pydantic import ValidationError as SettingsValidationError

from preprint_migrator.clients import DEFAULT_BASE_URL, ClientError, NotFoundError, OsfClient
from preprint_migrator.pipeline import MigrationRunner
from schemas.osf import Preprint
from schemas.settings import ImportSettings

DEFAULT_LOCALE = "en_US"
DEFAULT_CONTEXT = "osf"
DEFAULT_EMAIL_TEMPLATE = "{author_id}@osf.invalid"
DEFAULT_SLEEP = 3.0
DEFAULT_MAX_ATTEMPTS = 3
TOKEN_ENV_VAR = "OSF_TOKEN"


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure logging for the CLI."""
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )


def fetch_preprints(client: OsfClient, preprint_ids: list[str]) -> Iterator[Preprint]:
    """Fetch the given preprints one by one, skipping unknown ids."""
    logger = logging.getLogger(__name__)
    for preprint_id in preprint_ids:
        try:
            yield client.fetch_preprint(preprint_id)
        except NotFoundError:
            logger.error(f"Preprint not found: {preprint_id}")


def migrate(args: argparse.Namespace) -> int:
    """Execute the migrate command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 when the run completes, 1 for process-level errors)
    """
    setup_logging(args.verbose, args.quiet)
    logger = logging.getLogger(__name__)

    try:
        settings = ImportSettings(
            output=args.output,
            locale=args.locale,
            user=args.user,
            email_template=args.email_template,
            context=args.context,
            include_public_id=not args.no_public_id,
            save_supplementary_files=args.save_supplementary_files,
            embed_submissions=args.embed_submissions,
            tag_galley_doi=args.tag_galley_doi,
            redirect_base_url=args.redirect_base_url,
            max_attempts=args.max_attempts,
            sleep_seconds=args.sleep,
        )
    except SettingsValidationError as e:
        for error in e.errors():
            field = ".".join(str(part) for part in error["loc"]) or "settings"
            logger.error(f"Invalid {field}: {error['msg']}")
        args.print_usage(sys.stderr)
        return 1

    try:
        settings.xml_dir.mkdir(parents=True, exist_ok=True)
        settings.sql_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Cannot create output directory {settings.output}: {e}")
        args.print_usage(sys.stderr)
        return 1

    config = {
        "base_url": args.base_url,
        "token": args.token,
        "headers": {
            "User-Agent": "preprint-migrator/0.1",
            "Accept": "application/vnd.api+json",
        },
    }

    try:
        with OsfClient(config) as client:
            if args.preprint:
                preprints = fetch_preprints(client, args.preprint)
                total = len(args.preprint)
            else:
                logger.info(f"Listing preprints of provider {args.provider}")
                preprints = client.fetch(args.provider)
                total = preprints.total

            runner = MigrationRunner(client, settings, logger=logger)
            summary = runner.run(preprints, total=total)

    except ClientError as e:
        logger.error(f"Failed to list preprints: {e}")
        args.print_usage(sys.stderr)
        return 1

    logger.info(f"Migration complete for {args.provider}")
    logger.info(f"  Succeeded: {len(summary.succeeded)}")
    logger.info(f"  Skipped: {len(summary.skipped)}")
    logger.info(f"  Output: {settings.output}")
    if summary.failed:
        logger.warning(f"  Failed: {len(summary.failed)}")
        for preprint_id in summary.failed:
            logger.warning(f"    - {preprint_id}")

    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = argparse.ArgumentParser(
        prog="preprint-migrator",
        description="Migrate OSF preprints into PKP native import XML",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    verbosity.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Only report warnings and errors",
    )

    subparsers = parser.add_subparsers(
        title="commands",
        description="Available commands",
        dest="command",
    )

    migrate_parser = subparsers.add_parser(
        "migrate",
        help="Migrate the preprints of an OSF provider",
        description="Fetch the preprints of an OSF provider and write one native import XML document per preprint, with the SQL statements to run after the import.",
    )
    migrate_parser.add_argument(
        "--provider",
        type=str,
        required=True,
        help="OSF preprint provider id (e.g. engrxiv)",
    )
    migrate_parser.add_argument(
        "--output",
        type=Path,
        required=True,
        help="Output directory for XML, submission files and SQL",
    )
    migrate_parser.add_argument(
        "--token",
        type=str,
        default=os.environ.get(TOKEN_ENV_VAR),
        help=f"OSF personal access token (default: ${TOKEN_ENV_VAR})",
    )
    migrate_parser.add_argument(
        "--user",
        type=str,
        help="Username recorded as uploader and used for the import command (default: first author)",
    )
    migrate_parser.add_argument(
        "--locale",
        type=str,
        default=DEFAULT_LOCALE,
        help=f"Locale of the imported content (default: {DEFAULT_LOCALE})",
    )
    migrate_parser.add_argument(
        "--email-template",
        type=str,
        default=DEFAULT_EMAIL_TEMPLATE,
        help=f"Template for author emails, with an {{author_id}} placeholder (default: {DEFAULT_EMAIL_TEMPLATE})",
    )
    migrate_parser.add_argument(
        "--context",
        type=str,
        default=DEFAULT_CONTEXT,
        help=f"Path of the OPS server receiving the import (default: {DEFAULT_CONTEXT})",
    )
    migrate_parser.add_argument(
        "--sleep",
        type=float,
        default=DEFAULT_SLEEP,
        help=f"Seconds to wait after each processed preprint (default: {DEFAULT_SLEEP})",
    )
    migrate_parser.add_argument(
        "--max-attempts",
        type=int,
        default=DEFAULT_MAX_ATTEMPTS,
        help=f"Attempts per preprint before giving up (default: {DEFAULT_MAX_ATTEMPTS})",
    )
    migrate_parser.add_argument(
        "--base-url",
        type=str,
        default=DEFAULT_BASE_URL,
        help=f"OSF API base URL (default: {DEFAULT_BASE_URL})",
    )
    migrate_parser.add_argument(
        "--no-public-id",
        action="store_true",
        help="Do not record the OSF id as public identifier",
    )
    migrate_parser.add_argument(
        "--save-supplementary-files",
        action="store_true",
        help="Import supplementary files as galleys instead of linking to them",
    )
    migrate_parser.add_argument(
        "--embed-submissions",
        action="store_true",
        help="Embed file content in the XML instead of writing it alongside",
    )
    migrate_parser.add_argument(
        "--tag-galley-doi",
        action="store_true",
        help="Attach the preprint DOI to the first galley",
    )
    migrate_parser.add_argument(
        "--redirect-base-url",
        type=str,
        help="Base URL for the redirect statements (e.g. https://example.org/index.php/osf/preprint/view)",
    )
    migrate_parser.add_argument(
        "--preprint",
        nargs="+",
        metavar="ID",
        help="Only migrate these preprint ids",
    )
    migrate_parser.set_defaults(func=migrate, print_usage=migrate_parser.print_usage)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
