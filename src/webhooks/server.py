import asyncio
import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import structlog

from src.errors import WebhookCryptoError, WebhookVerificationError
from src.webhooks.processor import WebhookProcessor

logger = structlog.get_logger(__name__)


class _WebhookHandler(BaseHTTPRequestHandler):
    """HTTP request handler for inbound gateway webhooks."""

    def do_POST(self):
        if self.path.split("?", 1)[0] != "/webhook":
            self._respond(404, {"error": "not found"})
            return

        content_length = int(self.headers.get("Content-Length", 0))
        body = self.rfile.read(content_length)
        headers = {k.lower(): v for k, v in self.headers.items()}
        processor: WebhookProcessor = self.server.processor  # type: ignore[attr-defined]

        try:
            result = asyncio.run(processor.handle_webhook(body, headers))
        except WebhookVerificationError as e:
            self._respond(401, {"error": str(e)})
            return
        except WebhookCryptoError as e:
            self._respond(400, {"error": str(e)})
            return
        except Exception as e:
            # Any downstream failure must be non-2xx so the gateway redelivers.
            logger.error("webhook.handler_failed", error=str(e))
            self._respond(500, {"error": "processing failed"})
            return

        self._respond(200, result)

    def _respond(self, code: int, body: dict) -> None:
        self.send_response(code)
        self.send_header("Content-Type", "application/json")
        self.end_headers()
        self.wfile.write(json.dumps(body).encode())

    def log_message(self, format, *args):
        """Suppress default request logging."""
        pass


class WebhookReceiverServer:
    """Threaded HTTP endpoint that feeds deliveries into a WebhookProcessor."""

    def __init__(self, processor: WebhookProcessor, host: str = "127.0.0.1", port: int = 0):
        self.processor = processor
        self._host = host
        self._port = port
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        self._server = ThreadingHTTPServer((self._host, self._port), _WebhookHandler)
        self._server.processor = self.processor  # type: ignore[attr-defined]
        # Get the actual port (useful when port=0)
        self._port = self._server.server_address[1]
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None

    @property
    def url(self) -> str:
        return f"http://{self._host}:{self._port}/webhook"

    @property
    def port(self) -> int:
        return self._port
