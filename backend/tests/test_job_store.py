from __future__ import annotations

import tempfile
import threading
import unittest
from pathlib import Path

from backend.imagegen.db.sqlite import SQLiteJobStore


class TestSQLiteJobStore(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.store = SQLiteJobStore(Path(self._td.name) / "jobs.sqlite3")

    def tearDown(self) -> None:
        self._td.cleanup()

    def test_create_job_starts_processing(self) -> None:
        rec = self.store.create_job("job-1", "biz-1", prompt="a latte", strategy={"goal": "awareness"})
        self.assertEqual(rec.status, "processing")
        self.assertEqual(rec.aspect_ratio, "1:1")
        self.assertEqual(rec.model_tier, "pro")
        self.assertIsNone(rec.result_asset_id)
        self.assertIsNone(rec.error_message)
        self.assertEqual(rec.strategy(), {"goal": "awareness"})

    def test_get_unknown_job_raises_key_error(self) -> None:
        with self.assertRaises(KeyError):
            self.store.get_job("missing")
        self.assertIsNone(self.store.find_job("missing"))

    def test_complete_then_fail_is_ignored(self) -> None:
        self.store.create_job("job-1", "biz-1", prompt="p")
        done = self.store.complete_job("job-1", "asset-1")
        self.assertIsNotNone(done)
        self.assertEqual(done.status, "completed")
        self.assertEqual(done.result_asset_id, "asset-1")

        self.assertIsNone(self.store.fail_job("job-1", "late failure"))
        self.assertIsNone(self.store.complete_job("job-1", "asset-2"))
        rec = self.store.get_job("job-1")
        self.assertEqual(rec.status, "completed")
        self.assertEqual(rec.result_asset_id, "asset-1")
        self.assertIsNone(rec.error_message)

    def test_failed_job_keeps_message(self) -> None:
        self.store.create_job("job-1", "biz-1", prompt="p")
        rec = self.store.fail_job("job-1", "")
        self.assertEqual(rec.status, "failed")
        self.assertEqual(rec.error_message, "Unknown error")

    def test_update_job_only_accepts_terminal_targets(self) -> None:
        self.store.create_job("job-1", "biz-1", prompt="p")
        with self.assertRaises(ValueError):
            self.store.update_job("job-1", status="processing")
        with self.assertRaises(ValueError):
            self.store.update_job("job-1", status="completed")
        rec = self.store.update_job("job-1", status="failed", error_message="boom")
        self.assertEqual(rec.status, "failed")
        self.assertEqual(rec.error_message, "boom")

    def test_update_after_delete_is_a_noop(self) -> None:
        self.store.create_job("job-1", "biz-1", prompt="p")
        self.assertTrue(self.store.delete_job("job-1"))
        self.assertFalse(self.store.delete_job("job-1"))
        self.assertIsNone(self.store.complete_job("job-1", "asset-1"))
        self.assertIsNone(self.store.fail_job("job-1", "boom"))
        self.assertIsNone(self.store.find_job("job-1"))

    def test_list_pending_is_newest_first_and_skips_terminal(self) -> None:
        self.store.create_job("old", "biz-1", prompt="p")
        self.store.create_job("done", "biz-1", prompt="p")
        self.store.create_job("other-biz", "biz-2", prompt="p")
        self.store.create_job("new", "biz-1", prompt="p")
        self.store.complete_job("done", "asset-1")

        pending = self.store.list_pending("biz-1")
        self.assertEqual([r.job_id for r in pending], ["new", "old"])
        self.assertEqual(self.store.list_pending("nobody"), [])

    def test_only_one_terminal_write_wins_under_concurrency(self) -> None:
        self.store.create_job("job-1", "biz-1", prompt="p")
        barrier = threading.Barrier(2)
        results: list = []
        lock = threading.Lock()

        def complete() -> None:
            barrier.wait()
            r = self.store.complete_job("job-1", "asset-1")
            with lock:
                results.append(r)

        def fail() -> None:
            barrier.wait()
            r = self.store.fail_job("job-1", "boom")
            with lock:
                results.append(r)

        threads = [threading.Thread(target=complete), threading.Thread(target=fail)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        self.assertEqual(len(results), 2)
        self.assertEqual(sum(1 for r in results if r is not None), 1, f"Expected one winner, got {results!r}")
        self.assertIn(self.store.get_job("job-1").status, ("completed", "failed"))


if __name__ == "__main__":
    unittest.main()
