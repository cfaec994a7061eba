#!/usr/bin/env python3
"""Command-line interface for ledger audits.

Usage:
    tuition-ledger audit --email ada@example.com
    tuition-ledger audit --student-id 3f2c... --format json
    tuition-ledger recompute --email ada@example.com
    tuition-ledger outstanding --format csv --output outstanding.csv
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from ..database import DatabaseManager, StudentRepository
from ..exceptions import UnknownPlan, UnknownStudent
from ..status import StatusResolver
from .report import ReportGenerator
from .service import ReconciliationService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def _write_output(output: str, output_file: Optional[str]) -> None:
    if output_file:
        with open(output_file, "w") as f:
            f.write(output)
        logger.info(f"Report written to {output_file}")
    else:
        print(output)


async def _resolve_student_id(session, student_id: Optional[str], email: Optional[str]) -> str:
    if student_id:
        return student_id
    student = await StudentRepository(session).get_by_email(email)
    if student is None:
        raise UnknownStudent(email=email)
    return student.id


async def run_audit_async(
    student_id: Optional[str] = None,
    email: Optional[str] = None,
    output_format: str = "text",
    output_file: Optional[str] = None,
    database_url: Optional[str] = None,
) -> int:
    """Print the audit view for one student.

    Returns:
        Exit code (0 for success, 1 if the student cannot be audited).
    """
    db_manager = DatabaseManager(database_url)
    await db_manager.initialize()
    try:
        async with db_manager.session() as session:
            sid = await _resolve_student_id(session, student_id, email)
            service = ReconciliationService(session)
            view = await service.audit(sid)
            _write_output(service.generate_report(view, format=output_format), output_file)
        return 0
    except (UnknownStudent, UnknownPlan) as e:
        logger.error(str(e))
        return 1
    finally:
        await db_manager.shutdown()


async def run_recompute_async(
    student_id: Optional[str] = None,
    email: Optional[str] = None,
    database_url: Optional[str] = None,
) -> int:
    """Re-derive and store one student's payment status."""
    db_manager = DatabaseManager(database_url)
    await db_manager.initialize()
    try:
        async with db_manager.session() as session:
            sid = await _resolve_student_id(session, student_id, email)
            status = await StatusResolver(session).recompute(sid)
        print(f"{sid}: {status.value}")
        return 0
    except (UnknownStudent, UnknownPlan) as e:
        logger.error(str(e))
        return 1
    finally:
        await db_manager.shutdown()


async def run_outstanding_async(
    output_format: str = "text",
    output_file: Optional[str] = None,
    database_url: Optional[str] = None,
) -> int:
    """List students with tuition still owed."""
    db_manager = DatabaseManager(database_url)
    await db_manager.initialize()
    try:
        async with db_manager.session() as session:
            records = await ReconciliationService(session).list_outstanding()

        generator = ReportGenerator()
        if output_format == "json":
            output = generator.outstanding_to_json(records)
        elif output_format == "csv":
            output = generator.outstanding_to_csv(records)
        else:
            output = generator.outstanding_to_text(records)
        _write_output(output, output_file)
        return 0
    except UnknownPlan as e:
        logger.error(str(e))
        return 1
    finally:
        await db_manager.shutdown()


def _add_student_selector(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--student-id", help="Student ID")
    group.add_argument("--email", help="Student email")


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI.

    Returns:
        Configured ArgumentParser.
    """
    parser = argparse.ArgumentParser(
        prog="tuition-ledger",
        description="Audit tools for the tuition payment ledger.",
    )
    parser.add_argument(
        "--database-url",
        help="Database URL (default: DATABASE_URL environment variable)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    audit_parser = subparsers.add_parser("audit", help="Show expected vs. actual payments")
    _add_student_selector(audit_parser)
    audit_parser.add_argument(
        "--format", "-f",
        choices=["text", "json", "csv"],
        default="text",
        help="Output format (default: text)",
    )
    audit_parser.add_argument("--output", "-o", help="Output file path (default: stdout)")

    recompute_parser = subparsers.add_parser(
        "recompute", help="Re-derive a student's payment status from the ledger"
    )
    _add_student_selector(recompute_parser)

    outstanding_parser = subparsers.add_parser(
        "outstanding", help="List students with tuition still owed"
    )
    outstanding_parser.add_argument(
        "--format", "-f",
        choices=["text", "json", "csv"],
        default="text",
        help="Output format (default: text)",
    )
    outstanding_parser.add_argument("--output", "-o", help="Output file path (default: stdout)")

    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point for the CLI.

    Args:
        args: Optional list of command-line arguments (for testing).

    Returns:
        Exit code.
    """
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    if parsed_args.command == "audit":
        return asyncio.run(run_audit_async(
            student_id=parsed_args.student_id,
            email=parsed_args.email,
            output_format=parsed_args.format,
            output_file=parsed_args.output,
            database_url=parsed_args.database_url,
        ))

    if parsed_args.command == "recompute":
        return asyncio.run(run_recompute_async(
            student_id=parsed_args.student_id,
            email=parsed_args.email,
            database_url=parsed_args.database_url,
        ))

    if parsed_args.command == "outstanding":
        return asyncio.run(run_outstanding_async(
            output_format=parsed_args.format,
            output_file=parsed_args.output,
            database_url=parsed_args.database_url,
        ))

    return 0


if __name__ == "__main__":
    sys.exit(main())
