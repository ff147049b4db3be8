import unittest

from fleetwatch.app_types import FetchFailure
from fleetwatch.data_sources import CallableFleetDataSource
from fleetwatch.domain import ChecklistStats, DefectCounts, TaskType
from fleetwatch.enrichment import (
    ChecklistStatsAdapter,
    DefectCountAdapter,
    PortDocCountAdapter,
    build_adapters,
)


def _recording(result=None, error=None):
    calls = []

    async def remote(key):
        calls.append(key)
        if error is not None:
            raise error
        return result

    return remote, calls


class _Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestFetchAdapters(unittest.IsolatedAsyncioTestCase):
    async def test_cache_hit_avoids_remote_call(self):
        remote, calls = _recording({"total": 3, "high": 1, "medium": 1, "low": 1})
        adapter = DefectCountAdapter(remote)

        first = await adapter.fetch_outcome("Ocean Star")
        second = await adapter.fetch_outcome("ocean  star")

        self.assertEqual(first.value, DefectCounts(total=3, high=1, medium=1, low=1))
        self.assertFalse(first.from_cache)
        self.assertTrue(second.from_cache)
        self.assertEqual(second.value, first.value)
        self.assertEqual(calls, ["Ocean Star"])
        self.assertEqual(adapter.remote_calls, 1)

    async def test_remote_failure_returns_default_and_is_not_cached(self):
        remote, calls = _recording(error=ConnectionError("defect service down"))
        adapter = DefectCountAdapter(remote)

        with self.assertLogs("fleetwatch.enrichment.adapters", level="WARNING"):
            outcome = await adapter.fetch_outcome("Ocean Star")

        self.assertEqual(outcome.value, DefectCounts(total=0, high=0, medium=0, low=0))
        self.assertFalse(outcome.ok)
        self.assertIsInstance(outcome.error, ConnectionError)
        self.assertEqual(len(adapter.cache), 0)

        await adapter.fetch("Ocean Star")
        self.assertEqual(len(calls), 2)
        self.assertEqual(adapter.failures, 2)

    async def test_failure_observer_receives_details(self):
        seen = []
        remote, _calls = _recording(error=TimeoutError("slow"))
        adapter = ChecklistStatsAdapter(remote, on_failure=seen.append)

        value = await adapter.fetch(42)

        self.assertEqual(value, ChecklistStats(status="pending", progress=0))
        self.assertEqual(len(seen), 1)
        failure = seen[0]
        self.assertIsInstance(failure, FetchFailure)
        self.assertEqual(failure.task_type, TaskType.CHECKLIST_STATS)
        self.assertEqual(failure.key, "42")
        self.assertEqual(failure.default, value)

    async def test_raising_observer_does_not_escape(self):
        def observer(_failure):
            raise RuntimeError("observer broke")

        remote, _calls = _recording(error=ValueError("bad"))
        adapter = PortDocCountAdapter(remote, on_failure=observer)
        self.assertEqual(await adapter.fetch("Singapore"), 0)

    async def test_checklist_payload_is_coerced(self):
        remote, _calls = _recording({"status": "In Progress", "progress": 42.6})
        adapter = ChecklistStatsAdapter(remote)
        value = await adapter.fetch("7")
        self.assertEqual(value, ChecklistStats(status="in_progress", progress=43))

    async def test_port_doc_count_rejects_missing_payload(self):
        remote, _calls = _recording(None)
        adapter = PortDocCountAdapter(remote)
        self.assertEqual(await adapter.fetch("Singapore"), 0)
        self.assertEqual(adapter.failures, 1)
        self.assertIsNone(adapter.cached("Singapore"))

    async def test_sync_remote_runs_off_the_event_loop(self):
        calls = []

        def remote(port_name):
            calls.append(port_name)
            return 7

        adapter = PortDocCountAdapter(remote)
        self.assertEqual(await adapter.fetch("Port of Singapore"), 7)
        self.assertEqual(adapter.cached("SINGAPORE"), 7)
        self.assertEqual(calls, ["Port of Singapore"])

    async def test_empty_key_skips_remote(self):
        remote, calls = _recording(5)
        adapter = PortDocCountAdapter(remote)
        self.assertEqual(await adapter.fetch(""), 0)
        self.assertEqual(await adapter.fetch(None), 0)
        self.assertEqual(calls, [])


class TestBuildAdapters(unittest.IsolatedAsyncioTestCase):
    async def test_one_adapter_and_cache_per_type(self):
        source = CallableFleetDataSource(
            defect_count=lambda name: DefectCounts(total=1, high=1),
            checklist_stats=lambda vessel_id: ChecklistStats(status="submitted", progress=100),
            port_doc_count=lambda port: 2,
        )
        adapters = build_adapters(source)

        self.assertEqual(set(adapters), set(TaskType))
        self.assertIsNot(adapters[TaskType.DEFECT_COUNT].cache, adapters[TaskType.PORT_DOC_COUNT].cache)
        self.assertEqual((await adapters[TaskType.DEFECT_COUNT].fetch("A")).total, 1)
        self.assertEqual((await adapters[TaskType.CHECKLIST_STATS].fetch(1)).status, "submitted")
        self.assertEqual(await adapters[TaskType.PORT_DOC_COUNT].fetch("Singapore"), 2)

    async def test_ttl_forces_refetch_after_expiry(self):
        calls = []

        def port_doc_count(port):
            calls.append(port)
            return len(calls)

        clock = _Clock()
        source = CallableFleetDataSource(
            defect_count=lambda name: {},
            checklist_stats=lambda vessel_id: {},
            port_doc_count=port_doc_count,
        )
        adapter = build_adapters(source, ttl_seconds=30, clock=clock)[TaskType.PORT_DOC_COUNT]

        self.assertEqual(await adapter.fetch("Singapore"), 1)
        clock.now += 29
        self.assertEqual(await adapter.fetch("Singapore"), 1)
        clock.now += 2
        self.assertEqual(await adapter.fetch("Singapore"), 2)


if __name__ == "__main__":
    unittest.main()
