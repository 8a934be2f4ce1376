"""Convenience entry point for running the Celery worker with beat embedded.

Deployments normally invoke the Celery CLI; this keeps a one-process runner
for local development.
"""
from __future__ import annotations

from .config.celery import celery_app


def main() -> None:
    celery_app.worker_main(["worker", "--beat", "--loglevel=INFO", "-Q", "high,default,low"])


if __name__ == "__main__":
    main()
