"""
Unit Tests — Celery tasks
══════════════════════════
Task bodies run synchronously on the worker loop; the broker is never contacted
(apply_async is patched).
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import patch

import pytest

from docinsight.schemas.documents import DocumentRecord, ProcessingStatus, utcnow
from docinsight.workers import tasks
from docinsight.workers.celery_app import TASK_ROUTES, celery_app

P = ProcessingStatus


@pytest.mark.unit
class TestCeleryConfig:

    def test_tasks_registered_and_routed(self):
        for name in TASK_ROUTES:
            assert name in celery_app.tasks

    def test_requeue_beat_schedule(self):
        entry = celery_app.conf.beat_schedule["requeue-stale-pending-documents-every-60s"]
        assert entry["task"] == "docinsight.workers.tasks.requeue_stale_documents"


@pytest.mark.unit
class TestRequeueStale:

    async def test_republishes_only_stale_pending(self, store, make_document):
        stale = await make_document(updated_at=utcnow() - timedelta(minutes=30))
        await make_document()
        await make_document(status=P.FAILED, updated_at=utcnow() - timedelta(minutes=30))

        with patch("docinsight.storage.factory.get_document_store", return_value=store), \
             patch.object(tasks.process_document, "apply_async") as apply_async:
            result = await tasks._requeue_stale_documents_async()

        assert result == {"requeued": 1}
        apply_async.assert_called_once_with(kwargs={"document_id": str(stale.id)}, countdown=5)


@pytest.mark.unit
class TestProcessDocumentTask:

    def test_runs_processor_synchronously(self, store, simulated_processor, owner_id):
        record = DocumentRecord(
            owner_id=owner_id,
            title="task doc",
            original_file_name="task.txt",
            file_type="txt",
            extracted_text="Pricing improved across every region this quarter.",
        )
        asyncio.run(store.create_document(record))

        with patch("docinsight.storage.factory.get_document_store", return_value=store), \
             patch("docinsight.workers.pipeline.build_processor", return_value=simulated_processor):
            result = tasks.process_document.run(document_id=str(record.id))

        assert result["status"] == "completed"
        assert result["document_id"] == str(record.id)

    def test_health_check(self):
        assert tasks.health_check.run() == {"status": "ok", "worker": "healthy"}


@pytest.mark.unit
class TestWorkerLoop:

    def test_tasks_share_one_loop_per_process(self):
        async def current_loop():
            return asyncio.get_running_loop()

        first = tasks.run_async(current_loop())
        second = tasks.run_async(current_loop())

        assert first is second
        assert not first.is_closed()

    def test_forked_worker_gets_fresh_loop_and_caches(self):
        from docinsight.storage.factory import get_document_store

        async def current_loop():
            return asyncio.get_running_loop()

        before = tasks.run_async(current_loop())
        store_before = get_document_store()

        tasks.reset_worker_state()
        after = tasks.run_async(current_loop())
        before.close()

        assert after is not before
        assert get_document_store() is not store_before
