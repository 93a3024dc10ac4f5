import pytest

from src.errors import GatewayRequestError
from src.gateway.transport import HttpTransport, to_form


class TestToForm:
    @pytest.mark.unit
    def test_drops_none_and_stringifies(self):
        assert to_form({"a": None, "b": 1, "c": "x"}) == {"b": "1", "c": "x"}


@pytest.mark.integration
@pytest.mark.asyncio
class TestHttpTransport:
    """Tests for HttpTransport against the fake gateway."""

    async def test_json_body_is_parsed(self, fake_gateway):
        transport = HttpTransport(fake_gateway.url, "test-bearer-token", timeout_seconds=5)
        try:
            res = await transport.request("POST", "/v1/checkouts", form={"entityId": "e", "amount": None})
        finally:
            transport.close()

        assert res.ok is True
        assert res.data["id"]
        assert fake_gateway.get_requests()[0]["form"] == {"entityId": "e"}

    async def test_non_2xx_is_returned_not_raised(self, fake_gateway):
        fake_gateway.set_http_status(503)
        transport = HttpTransport(fake_gateway.url, "test-bearer-token", timeout_seconds=5)
        try:
            res = await transport.request("GET", "/v1/payments/x")
        finally:
            transport.close()
        assert res.ok is False
        assert res.status == 503

    async def test_unreachable_host_raises_without_status(self):
        transport = HttpTransport("http://127.0.0.1:1", "tok", timeout_seconds=2)
        try:
            with pytest.raises(GatewayRequestError) as exc_info:
                await transport.request("GET", "/v1/payments/x")
        finally:
            transport.close()
        assert exc_info.value.status is None
