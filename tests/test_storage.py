# -*- coding: utf-8 -*-

from __future__ import annotations

import shutil
import tempfile
import unittest
from pathlib import Path

from fitjobs.jobs.models import GenerationJob, JobStatus
from fitjobs.jobs.storage import PendingJobStore


class TestPendingJobStore(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = Path(tempfile.mkdtemp(prefix="fitjobs-store-"))

    def tearDown(self) -> None:
        shutil.rmtree(self._tmp, ignore_errors=True)

    def test_save_load_clear(self) -> None:
        store = PendingJobStore("diet", data_root=self._tmp)
        self.assertIsNone(store.load())

        job = GenerationJob(
            job_id="j1",
            status=JobStatus.processing,
            created_at="2026-01-01T00:00:00Z",
            estimated_time_remaining_seconds=60,
        )
        store.save(job)
        self.assertEqual(store.path, self._tmp / "jobs" / "diet_pending.json")
        self.assertEqual(store.load(), job)

        store.clear()
        self.assertIsNone(store.load())
        store.clear()

    def test_targets_are_separate(self) -> None:
        diet = PendingJobStore("diet", data_root=self._tmp)
        workout = PendingJobStore("workout", data_root=self._tmp)
        diet.save(GenerationJob(job_id="d", status=JobStatus.pending, created_at="2026-01-01T00:00:00Z"))
        self.assertIsNone(workout.load())

    def test_corrupt_record_is_dropped(self) -> None:
        store = PendingJobStore("diet", data_root=self._tmp)
        store.path.parent.mkdir(parents=True, exist_ok=True)
        store.path.write_text("{not json", encoding="utf-8")
        self.assertIsNone(store.load())
        self.assertFalse(store.path.exists())

        store.path.write_text('{"job_id": "x", "status": "exploded"}', encoding="utf-8")
        self.assertIsNone(store.load())
        self.assertFalse(store.path.exists())


if __name__ == "__main__":
    unittest.main()
