import threading
import unittest

from pastforward.models import JobStatus, StatusChange
from pastforward.registry import InvalidTransition, JobRegistry

ERAS = ["1950s", "1960s", "1970s"]


class RegistryTest(unittest.TestCase):
    def setUp(self) -> None:
        self.registry = JobRegistry()
        self.registry.initialize(ERAS)

    def test_initialize_creates_pending_jobs_in_order(self) -> None:
        snapshot = self.registry.snapshot()
        self.assertEqual(list(snapshot), ERAS)
        self.assertEqual(self.registry.job_ids, tuple(ERAS))
        self.assertEqual(len(self.registry), 3)
        self.assertIn("1960s", self.registry.job_ids)
        for job in snapshot.values():
            self.assertEqual(job.status, JobStatus.PENDING)
            self.assertIsNone(job.result)
            self.assertIsNone(job.error_message)

    def test_initialize_rejects_duplicates(self) -> None:
        with self.assertRaises(ValueError):
            self.registry.initialize(["1950s", "1950s"])

    def test_initialize_replaces_previous_jobs(self) -> None:
        self.registry.set_status("1950s", JobStatus.IN_PROGRESS)
        self.registry.set_status("1950s", JobStatus.DONE, "old.jpg")

        self.registry.initialize(ERAS)
        job = self.registry.get("1950s")
        self.assertEqual(job.status, JobStatus.PENDING)
        self.assertIsNone(job.result)
        self.assertEqual(job.attempt_count, 0)

        self.registry.initialize(["2050s"])
        self.assertEqual(list(self.registry.snapshot()), ["2050s"])
        self.assertNotIn("1950s", self.registry.job_ids)

    def test_done_and_error_payloads(self) -> None:
        self.registry.set_status("1950s", JobStatus.IN_PROGRESS)
        done = self.registry.set_status("1950s", JobStatus.DONE, "1950s.jpg")
        self.assertEqual(done.result, "1950s.jpg")
        self.assertIsNone(done.error_message)

        self.registry.set_status("1960s", JobStatus.IN_PROGRESS)
        failed = self.registry.set_status("1960s", JobStatus.ERROR, "quota exceeded")
        self.assertEqual(failed.error_message, "quota exceeded")
        self.assertIsNone(failed.result)

    def test_in_progress_clears_previous_outcome(self) -> None:
        self.registry.set_status("1970s", JobStatus.IN_PROGRESS)
        self.registry.set_status("1970s", JobStatus.ERROR, "boom")
        retried = self.registry.set_status("1970s", JobStatus.IN_PROGRESS)
        self.assertIsNone(retried.error_message)
        self.assertIsNone(retried.result)
        self.assertEqual(retried.attempt_count, 2)

    def test_illegal_transitions(self) -> None:
        with self.assertRaises(InvalidTransition):
            self.registry.set_status("1950s", JobStatus.DONE, "skip.jpg")
        with self.assertRaises(InvalidTransition):
            self.registry.set_status("1950s", JobStatus.ERROR, "skip")
        self.registry.set_status("1950s", JobStatus.IN_PROGRESS)
        with self.assertRaises(InvalidTransition):
            self.registry.set_status("1950s", JobStatus.IN_PROGRESS)
        with self.assertRaises(InvalidTransition):
            self.registry.set_status("1950s", JobStatus.PENDING)
        self.assertEqual(self.registry.get("1950s").status, JobStatus.IN_PROGRESS)

    def test_done_without_result_is_not_written(self) -> None:
        self.registry.set_status("1950s", JobStatus.IN_PROGRESS)
        with self.assertRaises(ValueError):
            self.registry.set_status("1950s", JobStatus.DONE)
        self.assertEqual(self.registry.get("1950s").status, JobStatus.IN_PROGRESS)

    def test_unknown_id(self) -> None:
        with self.assertRaises(KeyError):
            self.registry.get("2200s Utopia")
        with self.assertRaises(KeyError):
            self.registry.set_status("2200s Utopia", JobStatus.IN_PROGRESS)

    def test_subscribers_see_committed_changes(self) -> None:
        changes: list[StatusChange] = []
        unsubscribe = self.registry.subscribe(changes.append)

        self.registry.set_status("1950s", JobStatus.IN_PROGRESS)
        self.assertEqual(len(changes), 1)
        self.assertEqual(changes[0].previous, JobStatus.PENDING)
        self.assertEqual(changes[0].status, JobStatus.IN_PROGRESS)
        self.assertIs(changes[0].job, self.registry.get("1950s"))

        unsubscribe()
        self.registry.set_status("1950s", JobStatus.DONE, "1950s.jpg")
        self.assertEqual(len(changes), 1)

    def test_failing_subscriber_does_not_block_write(self) -> None:
        seen: list[StatusChange] = []

        def broken(change: StatusChange) -> None:
            raise RuntimeError("render failed")

        self.registry.subscribe(broken)
        self.registry.subscribe(seen.append)
        with self.assertLogs("pastforward", level="ERROR") as logs:
            self.registry.set_status("1960s", JobStatus.IN_PROGRESS)
        self.assertEqual(self.registry.get("1960s").status, JobStatus.IN_PROGRESS)
        self.assertEqual(len(seen), 1)
        self.assertIn("status_listener_failed", logs.output[0])

    def test_readers_on_other_threads_see_whole_jobs(self) -> None:
        stop = threading.Event()
        bad: list[object] = []

        def reader() -> None:
            while not stop.is_set():
                for job in self.registry.snapshot().values():
                    if job.status is JobStatus.DONE and job.result is None:
                        bad.append(job)
                    if job.status is JobStatus.ERROR and job.error_message is None:
                        bad.append(job)

        thread = threading.Thread(target=reader)
        thread.start()
        try:
            for attempt in range(200):
                self.registry.set_status("1950s", JobStatus.IN_PROGRESS)
                if attempt % 2:
                    self.registry.set_status("1950s", JobStatus.DONE, f"{attempt}.jpg")
                else:
                    self.registry.set_status("1950s", JobStatus.ERROR, f"error {attempt}")
        finally:
            stop.set()
            thread.join()
        self.assertEqual(bad, [])
        self.assertEqual(self.registry.get("1950s").attempt_count, 200)


if __name__ == "__main__":
    unittest.main()
