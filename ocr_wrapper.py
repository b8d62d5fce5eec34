import logging
import os
import time
from pathlib import Path

from flask import Flask, Response, jsonify, request, send_from_directory

from list_ocr import (
    Orchestrator,
    RequestRejected,
    get_api_key,
    get_model_client,
    load_settings,
    prepare_request,
)
from list_ocr.progress import NDJSON_MIMETYPE, encode_stream, error_body

logger = logging.getLogger(__name__)

app = Flask(__name__)

# ------------------------------------------------------------------------------
# Directories
# ------------------------------------------------------------------------------
STATIC_DIR = Path(os.getenv("LIST_OCR_STATIC_DIR", Path(__file__).resolve().parent / "static"))

PAGE_PATHS = ("/", "/index.html")

UNAUTHORIZED_PAGE = """<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"><title>Access restricted</title></head>
<body>
  <h1>Access restricted</h1>
  <p>This service requires a valid access token.</p>
  <p>Open the page as <strong>?token=your_token</strong></p>
</body>
</html>"""


# ------------------------------------------------------------------------------
# Access gate
# ------------------------------------------------------------------------------
@app.before_request
def check_access_token():
    expected = os.getenv("ACCESS_TOKEN")
    if not expected:
        return None

    if request.path.startswith("/api/"):
        if request.headers.get("X-Access-Token") != expected:
            return jsonify(error_body("UNAUTHORIZED", "Invalid access token")), 401
    elif request.path in PAGE_PATHS:
        if request.args.get("token") != expected:
            return Response(UNAUTHORIZED_PAGE, status=401, mimetype="text/html")
    return None


# ------------------------------------------------------------------------------
# Routes
# ------------------------------------------------------------------------------
@app.get("/health")
def health():
    return jsonify({"status": "ok"})


@app.get("/")
@app.get("/index.html")
def index():
    return send_from_directory(STATIC_DIR, "index.html")


@app.route("/api/ocr", methods=["POST"])
def run_ocr():
    received_at = time.monotonic()

    try:
        body = request.get_json(force=True, silent=True)
        settings = load_settings()
        api_key = get_api_key()
        ocr_request = prepare_request(body, settings, api_key, received_at=received_at)
        orchestrator = Orchestrator(get_model_client(api_key, settings), settings)
    except RequestRejected as e:
        logger.info("Rejected OCR request: %s", e.code)
        return jsonify(error_body(e.code, e.message)), e.status
    except Exception as e:
        logger.exception("OCR request setup failed")
        return jsonify(error_body("INTERNAL_ERROR", str(e) or "Recognition service unavailable")), 500

    return Response(
        encode_stream(orchestrator.run(ocr_request)),
        mimetype=NDJSON_MIMETYPE,
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


# ------------------------------------------------------------------------------
# Entrypoint
# ------------------------------------------------------------------------------
if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", "5000")), threaded=True)
