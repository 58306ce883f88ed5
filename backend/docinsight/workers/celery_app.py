"""
Celery Application Factory

Runs document analysis outside the API process when task_backend=celery.
Broker and result backend URLs come from Settings (CELERY_BROKER_URL,
CELERY_RESULT_BACKEND).

Queue topology:
  documents.analysis — analysis pipeline, one task per document
  documents.requeue  — beat-driven re-publish of stale pending documents
  system.health      — internal health-check tasks

Task arguments are ids only; workers load everything else from the store.
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.signals import task_failure, task_postrun, task_prerun
from kombu import Exchange, Queue

from docinsight.core.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Queue and exchange definitions
# ---------------------------------------------------------------------------

DOCUMENTS_EXCHANGE = Exchange("documents", type="direct", durable=True)

TASK_QUEUES = (
    Queue(
        "documents.analysis",
        exchange=DOCUMENTS_EXCHANGE,
        routing_key="documents.analysis",
        durable=True,
    ),
    Queue(
        "documents.requeue",
        exchange=DOCUMENTS_EXCHANGE,
        routing_key="documents.requeue",
        durable=True,
    ),
    Queue(
        "system.health",
        Exchange("system", type="direct"),
        routing_key="system.health",
        durable=True,
    ),
)

TASK_ROUTES = {
    "docinsight.workers.tasks.process_document":        {"queue": "documents.analysis"},
    "docinsight.workers.tasks.requeue_stale_documents": {"queue": "documents.requeue"},
    "docinsight.workers.tasks.health_check":            {"queue": "system.health"},
}

# ---------------------------------------------------------------------------
# Celery app factory
# ---------------------------------------------------------------------------

def create_celery_app() -> Celery:
    app = Celery("docinsight")

    app.conf.update(
        broker_url=settings.celery_broker_url,
        result_backend=settings.celery_result_backend,

        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        event_serializer="json",

        task_queues=TASK_QUEUES,
        task_routes=TASK_ROUTES,
        task_default_queue="documents.analysis",
        task_default_exchange="documents",
        task_default_routing_key="documents.analysis",

        # redelivery is a no-op: start() only succeeds from pending
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,

        task_soft_time_limit=300,
        task_time_limit=360,

        # state lives in the document store, not in Celery results
        result_expires=3600,

        timezone="UTC",
        enable_utc=True,

        beat_schedule={
            "requeue-stale-pending-documents-every-60s": {
                "task":     "docinsight.workers.tasks.requeue_stale_documents",
                "schedule": 60,
                "options":  {"queue": "documents.requeue"},
            },
        },

        worker_max_tasks_per_child=200,
    )

    app.autodiscover_tasks(["docinsight.workers"])

    return app


celery_app = create_celery_app()


# ---------------------------------------------------------------------------
# Celery signals: task lifecycle logging
# ---------------------------------------------------------------------------

@task_prerun.connect
def on_task_prerun(task_id, task, args, kwargs, **_):
    logger.info(
        "Task start | task_id=%s task=%s doc=%s",
        task_id, task.name, (kwargs or {}).get("document_id", "?"),
    )


@task_postrun.connect
def on_task_postrun(task_id, task, args, kwargs, retval, state, **_):
    logger.info(
        "Task end | task_id=%s task=%s state=%s doc=%s",
        task_id, task.name, state, (kwargs or {}).get("document_id", "?"),
    )


@task_failure.connect
def on_task_failure(task_id, exception, args, kwargs, traceback, einfo, **_):
    logger.error(
        "Task failed | task_id=%s doc=%s error=%s",
        task_id, (kwargs or {}).get("document_id", "?"), exception,
        exc_info=True,
    )
