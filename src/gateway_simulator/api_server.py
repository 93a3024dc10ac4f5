import json
import re
import threading
import uuid
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Self
from urllib.parse import parse_qs, urlsplit

APPROVED_CODE = "000.100.110"
APPROVED_DESCRIPTION = "Request successfully processed in 'Merchant in Integrator Test Mode'"


def _flatten(query: str) -> dict:
    return {k: v[-1] for k, v in parse_qs(query, keep_blank_values=True).items()}


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:24]}"


class _GatewayHandler(BaseHTTPRequestHandler):
    """Answers the handful of REST routes the adapter calls."""

    ROUTES = [
        ("POST", re.compile(r"^/v1/checkouts$"), "_checkout"),
        ("GET", re.compile(r"^/v1/checkouts/(?P<id>[^/]+)/payment$"), "_payment_result"),
        ("POST", re.compile(r"^/v1/payments$"), "_payment"),
        ("POST", re.compile(r"^/v1/payments/(?P<id>[^/]+)$"), "_reference_payment"),
        ("GET", re.compile(r"^/v1/payments/(?P<id>[^/]+)$"), "_payment_result"),
        ("POST", re.compile(r"^/v1/registrations$"), "_registration"),
        ("POST", re.compile(r"^/v1/registrations/(?P<id>[^/]+)/payments$"), "_payment"),
        ("DELETE", re.compile(r"^/v1/registrations/(?P<id>[^/]+)$"), "_acknowledge"),
        ("POST", re.compile(r"^/v1/subscriptions$"), "_subscription"),
        ("DELETE", re.compile(r"^/v1/subscriptions/(?P<id>[^/]+)$"), "_acknowledge"),
        ("POST", re.compile(r"^/v1/threeDSecure$"), "_three_ds"),
        ("POST", re.compile(r"^/v1/threeDSecure/(?P<id>[^/]+)$"), "_three_ds"),
        ("POST", re.compile(r"^/v1/exemptions$"), "_three_ds"),
    ]

    def do_GET(self):
        self._dispatch("GET")

    def do_POST(self):
        self._dispatch("POST")

    def do_DELETE(self):
        self._dispatch("DELETE")

    def _dispatch(self, method: str) -> None:
        config = self.server.config  # type: ignore[attr-defined]
        parts = urlsplit(self.path)
        content_length = int(self.headers.get("Content-Length", 0))
        form = _flatten(self.rfile.read(content_length).decode("utf-8")) if content_length else {}

        with config["lock"]:
            config["requests"].append({
                "method": method,
                "path": parts.path,
                "query": _flatten(parts.query),
                "form": form,
                "headers": dict(self.headers),
            })
            forced_status = config["http_status"]

        if forced_status is not None:
            self._respond(forced_status, {"result": {"code": "800.900.300", "description": "forced failure"}})
            return

        if self.headers.get("Authorization") != f"Bearer {config['bearer_token']}":
            self._respond(401, {"result": {"code": "800.900.300", "description": "invalid authentication information"}})
            return

        for route_method, pattern, handler_name in self.ROUTES:
            match = pattern.match(parts.path)
            if route_method == method and match:
                status, body = getattr(self, handler_name)(form, match.groupdict().get("id"))
                self._respond(status, body)
                return
        self._respond(404, {"result": {"code": "200.300.404", "description": "invalid or missing parameter"}})

    def _result(self) -> dict:
        config = self.server.config  # type: ignore[attr-defined]
        return {"code": config["result_code"], "description": config["result_description"]}

    def _checkout(self, form, _):
        return 200, {"id": _new_id("chk").upper(), "result": {"code": "000.200.100", "description": "successfully created checkout"}}

    def _payment(self, form, registration_id):
        body = {
            "id": _new_id("pay"),
            "paymentType": form.get("paymentType"),
            "paymentBrand": form.get("paymentBrand"),
            "amount": form.get("amount"),
            "currency": form.get("currency"),
            "result": self._result(),
        }
        if registration_id:
            body["registrationId"] = registration_id
        return 200, body

    def _reference_payment(self, form, payment_id):
        return 200, {
            "id": _new_id("pay"),
            "referencedId": payment_id,
            "paymentType": form.get("paymentType"),
            "amount": form.get("amount"),
            "currency": "USD",
            "result": self._result(),
        }

    def _payment_result(self, form, payment_id):
        return 200, {
            "id": payment_id,
            "paymentType": "DB",
            "amount": "25.00",
            "currency": "USD",
            "result": self._result(),
        }

    def _registration(self, form, _):
        number = form.get("card.number", "")
        return 200, {
            "id": _new_id("reg"),
            "paymentBrand": form.get("paymentBrand"),
            "card": {
                "bin": number[:6],
                "last4Digits": number[-4:],
                "holder": form.get("card.holder"),
                "expiryMonth": form.get("card.expiryMonth"),
                "expiryYear": form.get("card.expiryYear"),
            },
            "result": self._result(),
        }

    def _subscription(self, form, _):
        return 200, {
            "id": _new_id("sub"),
            "registrationId": form.get("registrationId"),
            "result": self._result(),
        }

    def _three_ds(self, form, transaction_id):
        return 200, {
            "id": transaction_id or _new_id("tds"),
            "exemptionType": form.get("exemptionType"),
            "result": self._result(),
        }

    def _acknowledge(self, form, _):
        return 200, {"result": self._result()}

    def _respond(self, code: int, body: dict) -> None:
        self.send_response(code)
        self.send_header("Content-Type", "application/json")
        self.end_headers()
        self.wfile.write(json.dumps(body).encode())

    def log_message(self, format, *args):
        """Suppress default request logging."""
        pass


class FakeGatewayServer:
    """In-process stand-in for the gateway REST API, for tests and local runs."""

    def __init__(self, host: str = "127.0.0.1", port: int = 0, bearer_token: str = "test-token"):
        self._host = host
        self._port = port
        self._config = {
            "bearer_token": bearer_token,
            "result_code": APPROVED_CODE,
            "result_description": APPROVED_DESCRIPTION,
            "http_status": None,
            "requests": [],
            "lock": threading.Lock(),
        }
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    def set_result(self, code: str, description: str = "") -> Self:
        with self._config["lock"]:
            self._config["result_code"] = code
            self._config["result_description"] = description
        return self

    def set_http_status(self, status: int | None) -> Self:
        """Answer every request with ``status``; ``None`` restores normal routing."""
        with self._config["lock"]:
            self._config["http_status"] = status
        return self

    def start(self) -> None:
        self._server = ThreadingHTTPServer((self._host, self._port), _GatewayHandler)
        self._server.config = self._config  # type: ignore[attr-defined]
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
        return f"http://{self._host}:{self._port}"

    @property
    def port(self) -> int:
        return self._port

    def get_requests(self, method: str | None = None, path_prefix: str = "") -> list[dict]:
        with self._config["lock"]:
            return [
                r for r in self._config["requests"]
                if (method is None or r["method"] == method) and r["path"].startswith(path_prefix)
            ]

    def clear_requests(self) -> None:
        with self._config["lock"]:
            self._config["requests"].clear()
