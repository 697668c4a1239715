from celery import Celery
from kombu import Queue

from urllens.platform.config import settings


def create_celery_app() -> Celery:
    """
    Create and configure the Celery application.

    Queue Structure:
    - audit.orchestration: full audit runs (discovery + probing + scoring)
    """
    celery_app = Celery(
        "urllens",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
    )

    celery_app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        result_serializer=settings.CELERY_RESULT_SERIALIZER,
        accept_content=[settings.CELERY_ACCEPT_CONTENT],
        timezone="UTC",
        enable_utc=True,
        task_track_started=settings.CELERY_TASK_TRACK_STARTED,
        task_time_limit=settings.CELERY_TASK_TIME_LIMIT,

        result_expires=3600,  # Results expire after 1 hour

        task_routes={
            "urllens.features.audit.workers.tasks.run_audit_job": {"queue": "audit.orchestration"},
        },
        task_queues=(
            Queue("default"),
            Queue("audit.orchestration"),
        ),
        task_default_queue="default",

        worker_prefetch_multiplier=1,  # Fair distribution

        # Audits are not retried: a slow site is reported, not masked
        task_acks_late=True,
        task_reject_on_worker_lost=False,
    )

    celery_app.autodiscover_tasks(["urllens.features.audit.workers"])

    return celery_app


# Global Celery app instance
celery_app = create_celery_app()
