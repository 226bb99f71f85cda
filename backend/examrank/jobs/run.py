"""CLI entry point for job execution."""

import asyncio
import json
import logging
import sys

import click

from examrank.core.logging import setup_logging
from examrank.db.session import AsyncSessionLocal
from examrank.jobs.batch_processing import trigger_batch
from examrank.pipeline.orchestrator import get_pending_count

logger = logging.getLogger(__name__)

JOB_KEYS = ("batch_processing", "pending_count")


@click.command()
@click.argument("job_key", type=click.Choice(JOB_KEYS))
@click.option("--force", is_flag=True, help="Ignore the time window and pending threshold.")
def run(job_key: str, force: bool):
    """
    Run a pipeline job.

    Example:
        python -m examrank.jobs.run batch_processing --force
    """
    setup_logging()

    async def run_async() -> int:
        async with AsyncSessionLocal() as db:
            try:
                if job_key == "pending_count":
                    click.echo(await get_pending_count(db))
                    return 0

                outcome = await trigger_batch(db, force=force, triggered_by="cli")
                click.echo(json.dumps(outcome.to_dict(), indent=2))
                if outcome.result is not None and outcome.result.errors:
                    return 1
                return 0
            except Exception as e:
                logger.error(f"Job failed: {e}", exc_info=True)
                click.echo(f"Job failed: {e}", err=True)
                return 1

    sys.exit(asyncio.run(run_async()))


if __name__ == "__main__":
    run()
