"""CLI commands for database management and report maintenance."""
import asyncio
import sys
import uuid

import click
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from pha.core import database
from pha.core.config import settings
from pha.core.exceptions import ApplicationError
from pha.models.report import REPORT_TYPES
from pha.repositories.assessment import AssessmentRepository
from pha.services.report_service import ReportService


@click.group()
def cli():
    """Database management and report maintenance commands."""
    pass


@cli.command()
def test_connection():
    """Test database connection."""

    async def _test():
        try:
            async with database.engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
            click.echo("✓ Database connection successful")
            return True
        except SQLAlchemyError as e:
            click.echo(f"✗ Database connection failed: {e}")
            return False

    success = asyncio.run(_test())
    if not success:
        sys.exit(1)


@cli.command()
def init_db():
    """Create all database tables (development only)."""

    async def _create():
        try:
            await database.init_db()
        finally:
            await database.close_db()

    try:
        asyncio.run(_create())
    except SQLAlchemyError as e:
        click.echo(f"✗ Error creating tables: {e}")
        sys.exit(1)
    click.echo("✓ All tables created successfully")


@cli.command()
@click.argument("assessment_id", type=click.UUID)
@click.option(
    "--report-type",
    type=click.Choice(REPORT_TYPES),
    default=settings.DEFAULT_REPORT_TYPE,
    show_default=True,
)
def regenerate_report(assessment_id: uuid.UUID, report_type: str):
    """Rebuild the report of a completed assessment from its stored responses."""

    async def _regenerate():
        async with database.async_session_maker() as session:
            service = ReportService(session)
            assessment = await AssessmentRepository(session).get_with_child(assessment_id)
            if assessment is None:
                raise click.ClickException(f"Assessment {assessment_id} not found")
            if not assessment.is_completed:
                raise click.ClickException(f"Assessment {assessment_id} is not completed")
            report = await service.regenerate(assessment, report_type)
            await session.commit()
            return report.id

    try:
        report_id = asyncio.run(_regenerate())
    except ApplicationError as e:
        click.echo(f"✗ Error regenerating report: {e.message}")
        sys.exit(1)
    click.echo(f"✓ Report {report_id} regenerated ({report_type})")


@cli.command()
@click.option(
    "--report-type",
    type=click.Choice(REPORT_TYPES),
    default=settings.DEFAULT_REPORT_TYPE,
    show_default=True,
)
def repair_reports(report_type: str):
    """Generate reports for completed assessments that have none."""

    async def _repair():
        async with database.async_session_maker() as session:
            return await ReportService(session).repair_missing_reports(report_type)

    repaired = asyncio.run(_repair())
    for assessment_id in repaired:
        click.echo(f"  repaired {assessment_id}")
    click.echo(f"✓ {len(repaired)} reports generated")


@cli.command()
def check_integrity():
    """List completed assessments that have no persisted responses."""

    async def _check():
        async with database.async_session_maker() as session:
            return await AssessmentRepository(session).get_completed_without_responses()

    broken = asyncio.run(_check())
    if not broken:
        click.echo("✓ Every completed assessment has its responses")
        return

    for assessment in broken:
        click.echo(f"✗ {assessment.id} completed at {assessment.completed_at} without responses")
    sys.exit(1)


if __name__ == "__main__":
    cli()
