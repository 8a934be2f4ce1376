import json
from datetime import timedelta

import httpx
import pytest

from conftest import paid_in_escrow
from core.config import MessagingSettings
from domain.common.clock import utc_now
from infrastructure.external.api_clients import APIError, MessagingAPIClient
from infrastructure.tasks.tasks.escrow import payout_batch_job, reconciliation_job
from infrastructure.tasks.tasks.housekeeping import purge_notifications_job
from application.services.payout_service import PAYOUT_JOB_LOCK


async def _released_days_ago(container, sandbox, people, days: int):
    customer, artisan, _ = people
    _, payment = await paid_in_escrow(container, sandbox, customer, artisan)
    await container.payments.release_escrow_payment(payment.id, customer.id)
    async with container.uow_factory() as uow:
        stored = await uow.payments.get_by_id(payment.id)
        stored.escrow.released_at = utc_now() - timedelta(days=days)
        await uow.payments.update(stored)
    return payment


@pytest.mark.asyncio
async def test_payout_job_reports_batch(container, sandbox, people):
    await _released_days_ago(container, sandbox, people, days=8)

    report = await payout_batch_job(container)

    assert report == {"skipped": False, "created": 1, "paid": 1, "failed": 0, "skipped_groups": 0}
    assert await payout_batch_job(container) == {"skipped": False, "created": 0, "paid": 0, "failed": 0, "skipped_groups": 0}


@pytest.mark.asyncio
async def test_payout_job_skips_when_another_run_holds_the_lock(container):
    async with container.locks.hold(PAYOUT_JOB_LOCK):
        assert await payout_batch_job(container) == {"skipped": True}


@pytest.mark.asyncio
async def test_reconciliation_job_totals_recent_releases(container, sandbox, people):
    _, artisan, _ = people
    await _released_days_ago(container, sandbox, people, days=1)
    await _released_days_ago(container, sandbox, people, days=2)

    lines = await reconciliation_job(container)

    assert lines == [
        {"artisan_id": artisan.id, "currency": "USD", "released_amount": 19000, "payment_count": 2}
    ]


@pytest.mark.asyncio
async def test_purge_job_returns_removed_count(container, people):
    customer, _, _ = people
    await container.notifications.notify_event(customer.id, "booking_update", order_id=1, status="accepted")
    assert await purge_notifications_job(container) == 0


@pytest.mark.asyncio
async def test_messaging_client_posts_email():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(202, json={"id": "msg_1"})

    config = MessagingSettings(email_endpoint="https://mail.test/send", api_key="k")
    async with MessagingAPIClient(config, transport=httpx.MockTransport(handler)) as client:
        assert await client.send_email("cara@example.com", "Hi", "Body") is True
        assert await client.send_sms("+15550001", "Body") is False

    assert seen[0]["to"] == "cara@example.com"
    assert seen[0]["subject"] == "Hi"


@pytest.mark.asyncio
async def test_messaging_client_does_not_retry_client_errors():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(400, json={"message": "bad recipient"})

    config = MessagingSettings(sms_endpoint="https://sms.test/send", max_retries=2)
    async with MessagingAPIClient(config, transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(APIError, match="bad recipient"):
            await client.send_sms("+15550001", "Body")

    assert len(calls) == 1
