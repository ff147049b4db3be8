import unittest

import requests

from fleetwatch.data_sources import (
    FleetApiClient,
    match_port,
    port_name_similarity,
    summarize_checklists,
    summarize_defects,
)
from fleetwatch.domain import ChecklistStats, DefectCounts


class _FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class _FakeSession:
    """Stands in for requests.Session; responses keyed by URL."""

    def __init__(self, get=None, post=None):
        self._get = get or {}
        self._post = post or {}
        self.get_calls = []
        self.post_calls = []

    def get(self, url, params=None, timeout=None):
        self.get_calls.append((url, params, timeout))
        return self._get[url]

    def post(self, url, json=None, timeout=None):
        self.post_calls.append((url, json, timeout))
        return self._post[url]


class TestSummaries(unittest.TestCase):
    def test_only_open_defects_are_counted(self):
        defects = [
            {"status_vessel": "Open", "Criticality": "High"},
            {"Status": "OPEN", "criticality": "low"},
            {"status": "closed", "Criticality": "High"},
            {"status": "open", "Criticality": "Medium"},
            {"status": "open", "Criticality": ""},
        ]
        self.assertEqual(summarize_defects(defects), DefectCounts(total=3, high=1, medium=1, low=1))

    def test_checklists_take_highest_status_and_mean_progress(self):
        checklists = [
            {"status": "Submitted", "progress_percentage": 100},
            {"status": "In Progress", "progress_percentage": 50},
            {"status": "Pending", "progress_percentage": None},
        ]
        self.assertEqual(summarize_checklists(checklists), ChecklistStats(status="submitted", progress=50))

    def test_no_checklists_is_pending(self):
        self.assertEqual(summarize_checklists([]), ChecklistStats(status="pending", progress=0))


class TestPortMatching(unittest.TestCase):
    PORTS = [
        {"id": 1, "port_name": "Singapore", "country_name": "Singapore"},
        {"id": 7, "port_name": "Port Hedland", "country_name": "Australia"},
    ]

    def test_similarity(self):
        self.assertEqual(port_name_similarity("SINGAPORE", "SINGAPORE"), 1.0)
        self.assertAlmostEqual(port_name_similarity("SINGAPORE", "SINGAPOR"), 1 - 1 / 9)
        self.assertEqual(port_name_similarity("", "SINGAPORE"), 0.0)

    def test_exact_match_with_country_abbreviation(self):
        self.assertEqual(match_port(self.PORTS, "Port Hedland, AU")["id"], 7)
        self.assertEqual(match_port(self.PORTS, "port of singapore")["id"], 1)

    def test_fuzzy_match_above_threshold(self):
        self.assertEqual(match_port(self.PORTS, "Singapor")["id"], 1)

    def test_no_match(self):
        self.assertIsNone(match_port(self.PORTS, "Rotterdam"))
        self.assertIsNone(match_port(self.PORTS, ""))


class TestFleetApiClient(unittest.TestCase):
    BASE = "http://fleet.test"

    def test_defect_counts_query_by_vessel_name(self):
        session = _FakeSession(
            get={
                f"{self.BASE}/api/defects": _FakeResponse(
                    {"defects": [{"status": "open", "Criticality": "high"}, {"status": "open", "Criticality": "low"}]}
                )
            }
        )
        client = FleetApiClient(f"{self.BASE}/", timeout=5, session=session)

        counts = client.get_defect_count_for_vessel("Ocean Star")

        self.assertEqual(counts, DefectCounts(total=2, high=1, low=1))
        self.assertEqual(session.get_calls, [(f"{self.BASE}/api/defects", {"vessel_name": "Ocean Star"}, 5)])

    def test_checklist_stats_accepts_bare_list(self):
        session = _FakeSession(
            get={
                f"{self.BASE}/api/voyage/42/checklists": _FakeResponse(
                    [{"status": "Acknowledged", "progress_percentage": 100}]
                )
            }
        )
        client = FleetApiClient(self.BASE, session=session)
        self.assertEqual(
            client.get_checklist_stats_for_vessel("42"), ChecklistStats(status="acknowledged", progress=100)
        )

    def test_port_document_count_resolves_port_then_counts(self):
        session = _FakeSession(
            post={
                f"{self.BASE}/api/ports/batch": _FakeResponse({"ports": [{"id": 7, "port_name": "Singapore"}]}),
                f"{self.BASE}/api/documents/counts-batch": _FakeResponse({"counts": {"7": 12}}),
            }
        )
        client = FleetApiClient(self.BASE, timeout=3, session=session)

        self.assertEqual(client.get_port_document_count("Port of Singapore"), 12)
        self.assertEqual(
            [call[1] for call in session.post_calls],
            [{"port_names": ["Port of Singapore"], "fuzzy_match": True}, {"port_ids": [7]}],
        )

    def test_unmatched_port_counts_zero_without_second_call(self):
        session = _FakeSession(post={f"{self.BASE}/api/ports/batch": _FakeResponse({"ports": []})})
        client = FleetApiClient(self.BASE, session=session)
        self.assertEqual(client.get_port_document_count("Atlantis"), 0)
        self.assertEqual(len(session.post_calls), 1)

    def test_http_errors_propagate(self):
        session = _FakeSession(get={f"{self.BASE}/api/defects": _FakeResponse({}, status_code=500)})
        client = FleetApiClient(self.BASE, session=session)
        with self.assertRaises(requests.HTTPError):
            client.get_defect_count_for_vessel("Ocean Star")

    def test_default_session_retries_gateway_errors(self):
        client = FleetApiClient(self.BASE, retries=4)
        retry = client.session.get_adapter(f"{self.BASE}/api/defects").max_retries
        self.assertEqual(retry.total, 4)
        self.assertIn(503, retry.status_forcelist)
        self.assertIn("POST", retry.allowed_methods)


if __name__ == "__main__":
    unittest.main()
