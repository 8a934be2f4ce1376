"""
Scheduled escrow jobs: the artisan payout batch and weekly reconciliation.
"""
from __future__ import annotations

from celery import shared_task

from core.logging_config import get_logger
from domain.common.exceptions import ResourceBusyException
from infrastructure.container import Container
from ..utils.base_task import BaseTask
from .runner import run_with_container


logger = get_logger(__name__)


async def payout_batch_job(container: Container) -> dict:
    try:
        report = await container.payouts.run_payout_batch()
    except ResourceBusyException:
        # another worker holds the job lock; its run covers this window
        logger.info("payout_batch_already_running")
        return {"skipped": True}
    return {
        "skipped": False,
        "created": len(report.created),
        "paid": report.paid,
        "failed": report.failed,
        "skipped_groups": report.skipped_groups,
    }


async def reconciliation_job(container: Container) -> list[dict]:
    lines = await container.payouts.reconcile()
    return [
        {
            "artisan_id": line.artisan_id,
            "currency": line.currency,
            "released_amount": line.released_amount,
            "payment_count": line.payment_count,
        }
        for line in lines
    ]


@shared_task(name="escrow.run_payout_batch", bind=True, base=BaseTask, max_retries=3, default_retry_delay=300)
def run_payout_batch(self) -> dict:
    return run_with_container(payout_batch_job)


@shared_task(name="escrow.reconcile_payouts", bind=True, base=BaseTask)
def reconcile_payouts(self) -> list[dict]:
    return run_with_container(reconciliation_job)
