"""Celery beat schedule.

Payouts run daily, reconciliation weekly; housekeeping purges expired chat
messages hourly and stale notifications daily.
"""
from __future__ import annotations

from celery.schedules import crontab

CELERY_BEAT_SCHEDULE = {
    "daily-artisan-payouts": {
        "task": "escrow.run_payout_batch",
        "schedule": crontab(hour=2, minute=0),
    },
    "weekly-payout-reconciliation": {
        "task": "escrow.reconcile_payouts",
        "schedule": crontab(hour=3, minute=0, day_of_week="mon"),
    },
    "hourly-chat-expiry": {
        "task": "housekeeping.purge_expired_messages",
        "schedule": crontab(minute=15),
    },
    "daily-notification-cleanup": {
        "task": "housekeeping.purge_expired_notifications",
        "schedule": crontab(hour=4, minute=30),
    },
}
