import unittest

from fastapi.testclient import TestClient

from fleetwatch.main import app


class TestMain(unittest.TestCase):
    def test_app_metadata(self):
        self.assertEqual(app.title, "Fleetwatch Enrichment")
        paths = {route.path for route in app.routes}
        self.assertIn("/v1/dashboard/session", paths)
        self.assertIn("/healthz", paths)

    def test_healthz(self):
        client = TestClient(app)
        resp = client.get("/healthz")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "ok"})


if __name__ == "__main__":
    unittest.main()
