import asyncio
from dataclasses import dataclass, field

import requests
import structlog

from src.errors import GatewayRequestError

logger = structlog.get_logger(__name__)


@dataclass
class GatewayResponse:
    status: int
    data: dict | None
    raw: str
    headers: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def to_form(params: dict) -> dict[str, str]:
    """Form fields for the gateway: None values dropped, everything else stringified."""
    return {k: str(v) for k, v in params.items() if v is not None}


class HttpTransport:
    """Bearer-authenticated calls to the gateway REST API.

    ``requests`` is blocking, so each call runs in a worker thread and the
    event loop stays free while the request is in flight.
    """

    def __init__(self, base_url: str, bearer_token: str, timeout_seconds: float = 30):
        self.base_url = base_url.rstrip("/")
        self.bearer_token = bearer_token
        self.timeout_seconds = timeout_seconds
        self._session = requests.Session()

    async def request(
        self,
        method: str,
        path: str,
        params: dict | None = None,
        form: dict | None = None,
    ) -> GatewayResponse:
        return await asyncio.to_thread(self._send, method, path, params, form)

    def _send(self, method: str, path: str, params: dict | None, form: dict | None) -> GatewayResponse:
        url = f"{self.base_url}{path}"
        headers = {
            "Authorization": f"Bearer {self.bearer_token}",
            "Accept": "application/json",
        }
        try:
            resp = self._session.request(
                method,
                url,
                params=to_form(params) if params else None,
                data=to_form(form) if form else None,
                headers=headers,
                timeout=self.timeout_seconds,
            )
        except requests.exceptions.Timeout as e:
            logger.error("gateway.http_timeout", method=method, path=path)
            raise GatewayRequestError(f"{method} {path} timed out") from e
        except requests.exceptions.RequestException as e:
            logger.error("gateway.http_error", method=method, path=path, error=str(e))
            raise GatewayRequestError(f"{method} {path} failed: {e}") from e

        try:
            data = resp.json() if resp.text else None
        except ValueError:
            data = None
        if data is not None and not isinstance(data, dict):
            data = None
        return GatewayResponse(
            status=resp.status_code,
            data=data,
            raw=resp.text,
            headers=dict(resp.headers),
        )

    def close(self) -> None:
        self._session.close()
