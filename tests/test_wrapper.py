import json
import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

# Add the project root to sys.path to import ocr_wrapper
sys.path.append(str(Path(__file__).parent.parent))

from ocr_wrapper import app
from tests.fakes import PNG_DATA_URL, FakeModel, make_settings

ROWS = '[["apples", "3", "kg", ""], ["milk", "2", "bottle", ""]]'


def read_stream(response):
    return [json.loads(line) for line in response.get_data(as_text=True).splitlines() if line.strip()]


class TestOCRWrapper(unittest.TestCase):
    def setUp(self):
        env = patch.dict(os.environ)
        env.start()
        self.addCleanup(env.stop)
        os.environ.pop("ACCESS_TOKEN", None)
        self.app = app.test_client()
        self.app.testing = True

    @patch("ocr_wrapper.get_model_client")
    @patch("ocr_wrapper.get_api_key", return_value="test-key")
    @patch("ocr_wrapper.load_settings")
    def test_streams_progress_then_result(self, mock_settings, mock_key, mock_client):
        mock_settings.return_value = make_settings()
        model = FakeModel([ROWS, ROWS, "no table here"], decision_output=ROWS)
        mock_client.return_value = model

        response = self.app.post("/api/ocr", json={"image": PNG_DATA_URL, "concurrency": 3})

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.content_type.startswith("application/x-ndjson"))
        self.assertEqual(response.headers["Cache-Control"], "no-cache")

        messages = read_stream(response)
        self.assertEqual([m["type"] for m in messages[:-1]], ["progress"] * (len(messages) - 1))
        progress = [m["progress"] for m in messages[:-1]]
        self.assertEqual(progress, sorted(progress))

        result = messages[-1]
        self.assertEqual(result["type"], "result")
        self.assertTrue(result["success"])
        self.assertEqual(result["data"]["items"], [["apples", "3", "kg", ""], ["milk", "2", "bottle", ""]])
        meta = result["data"]["metadata"]
        self.assertEqual(meta["concurrencyUsed"], 3)
        self.assertEqual(meta["validAttempts"], 2)
        self.assertIsInstance(meta["processingTimeSeconds"], float)

    @patch("ocr_wrapper.get_model_client")
    @patch("ocr_wrapper.get_api_key", return_value="test-key")
    @patch("ocr_wrapper.load_settings")
    def test_stream_error_event(self, mock_settings, mock_key, mock_client):
        mock_settings.return_value = make_settings()
        mock_client.return_value = FakeModel(["unreadable"])

        response = self.app.post("/api/ocr", json={"image": PNG_DATA_URL, "concurrency": 1})

        self.assertEqual(response.status_code, 200)
        last = read_stream(response)[-1]
        self.assertEqual(last["type"], "error")
        self.assertEqual(last["error"]["code"], "NO_VALID_RESULTS")

    @patch("ocr_wrapper.get_model_client")
    @patch("ocr_wrapper.get_api_key", return_value="test-key")
    @patch("ocr_wrapper.load_settings")
    def test_invalid_concurrency_rejected_before_any_call(self, mock_settings, mock_key, mock_client):
        mock_settings.return_value = make_settings()

        response = self.app.post("/api/ocr", json={"image": PNG_DATA_URL, "concurrency": 11})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json(), {
            "success": False,
            "error": {"code": "INVALID_CONCURRENCY", "message": "Concurrency must be between 1 and 10"},
        })
        mock_client.assert_not_called()

    @patch("ocr_wrapper.get_model_client", side_effect=RuntimeError("bad client config"))
    @patch("ocr_wrapper.get_api_key", return_value="test-key")
    @patch("ocr_wrapper.load_settings")
    def test_client_setup_failure_returns_json_error(self, mock_settings, mock_key, mock_client):
        mock_settings.return_value = make_settings()

        response = self.app.post("/api/ocr", json={"image": PNG_DATA_URL, "concurrency": 2})

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.get_json(), {
            "success": False,
            "error": {"code": "INTERNAL_ERROR", "message": "bad client config"},
        })

    @patch("ocr_wrapper.get_api_key", return_value="test-key")
    def test_badly_typed_config_still_streams(self, mock_key):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text(json.dumps({"ocr": {"timeout": "30000"}}))
            model = FakeModel([ROWS])
            with patch("list_ocr.config.CONFIG_PATH", path), \
                    patch("list_ocr.ChatCompletionClient", return_value=model) as mock_client:
                response = self.app.post("/api/ocr", json={"image": PNG_DATA_URL, "concurrency": 1})
                messages = read_stream(response)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(mock_client.call_args.kwargs["timeout_s"], 30.0)
        self.assertEqual(messages[-1]["type"], "result")

    @patch("ocr_wrapper.load_settings")
    def test_missing_image(self, mock_settings):
        mock_settings.return_value = make_settings()
        response = self.app.post("/api/ocr", json={})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"]["code"], "NO_IMAGE")

    @patch("ocr_wrapper.get_api_key", return_value=None)
    @patch("ocr_wrapper.load_settings")
    def test_missing_api_key(self, mock_settings, mock_key):
        mock_settings.return_value = make_settings()
        response = self.app.post("/api/ocr", json={"image": PNG_DATA_URL})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.get_json()["error"]["code"], "NO_API_KEY")

    def test_health(self):
        response = self.app.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json(), {"status": "ok"})

    def test_api_requires_token_when_configured(self):
        os.environ["ACCESS_TOKEN"] = "secret"
        response = self.app.post("/api/ocr", json={"image": PNG_DATA_URL})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()["error"]["code"], "UNAUTHORIZED")

        wrong = self.app.post("/api/ocr", json={}, headers={"X-Access-Token": "nope"})
        self.assertEqual(wrong.status_code, 401)

    @patch("ocr_wrapper.load_settings")
    def test_api_passes_gate_with_token(self, mock_settings):
        os.environ["ACCESS_TOKEN"] = "secret"
        mock_settings.return_value = make_settings()
        response = self.app.post("/api/ocr", json={}, headers={"X-Access-Token": "secret"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"]["code"], "NO_IMAGE")

    def test_page_requires_token_query(self):
        os.environ["ACCESS_TOKEN"] = "secret"
        response = self.app.get("/?token=wrong")
        self.assertEqual(response.status_code, 401)
        self.assertIn("text/html", response.content_type)
        # health is never gated
        self.assertEqual(self.app.get("/health").status_code, 200)

    def test_page_served_with_token(self):
        os.environ["ACCESS_TOKEN"] = "secret"
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / "index.html").write_text("<html>list ocr</html>", encoding="utf-8")
            with patch("ocr_wrapper.STATIC_DIR", Path(tmp)):
                response = self.app.get("/?token=secret")
                self.assertEqual(response.status_code, 200)
                self.assertIn(b"list ocr", response.data)
                response.close()


if __name__ == '__main__':
    unittest.main()
