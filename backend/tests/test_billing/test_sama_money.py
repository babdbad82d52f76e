"""Tests for the SAMA Money client against a mocked HTTP transport."""

from unittest.mock import patch

import httpx
import pytest

from elverra.billing import sama_money
from elverra.billing.sama_money import SamaMoneyError, request_payment
from elverra.config import settings

pytestmark = pytest.mark.asyncio


@pytest.fixture
def sama_credentials():
    with (
        patch.object(settings, "sama_transac", "TRANSAC-1"),
        patch.object(settings, "sama_cmd", "CMD-1"),
        patch.object(settings, "sama_cle_publique", "pk_test"),
    ):
        yield


def _mock_gateway(handler):
    """Route the module's HTTP client through ``handler``."""

    def _client() -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=settings.sama_base_url,
            transport=httpx.MockTransport(handler),
        )

    return patch.object(sama_money, "get_http_client", _client)


class TestRequestPayment:
    async def test_not_configured(self):
        with patch.object(settings, "sama_transac", ""):
            with pytest.raises(SamaMoneyError, match="not configured"):
                await request_payment("SUB_x_1", 2000, "+22370000000")

    async def test_authenticates_then_pays(self, sama_credentials):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.path.endswith("/marchand/auth"):
                return httpx.Response(200, json={"status": 1, "resultat": {"token": "tok"}})
            return httpx.Response(200, json={"status": 1, "msg": "ok"})

        with _mock_gateway(handler):
            data = await request_payment("SUB_x_1", 2000, "+22370000000")

        assert data["status"] == 1
        auth, pay = seen
        assert auth.headers["TRANSAC"] == "TRANSAC-1"
        assert auth.headers["cle_publique"] == "pk_test"
        assert pay.headers["Authorization"] == "Bearer tok"
        body = dict(httpx.QueryParams(pay.content.decode()))
        assert body["idCommande"] == "SUB_x_1"
        assert body["montant"] == "2000"
        assert body["phoneClient"] == "+22370000000"

    async def test_auth_rejected(self, sama_credentials):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": 0, "msg": "bad key"})

        with _mock_gateway(handler):
            with pytest.raises(SamaMoneyError, match="auth failed"):
                await request_payment("SUB_x_1", 2000, "+22370000000")

    async def test_pay_rejected(self, sama_credentials):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/marchand/auth"):
                return httpx.Response(200, json={"status": 1, "resultat": {"token": "tok"}})
            return httpx.Response(200, json={"status": 0, "msg": "insufficient funds"})

        with _mock_gateway(handler):
            with pytest.raises(SamaMoneyError) as exc_info:
                await request_payment("SUB_x_1", 2000, "+22370000000")
        assert exc_info.value.details == {"status": 0, "msg": "insufficient funds"}

    async def test_http_error_wrapped(self, sama_credentials):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="maintenance")

        with _mock_gateway(handler):
            with pytest.raises(SamaMoneyError, match="payment failed"):
                await request_payment("SUB_x_1", 2000, "+22370000000")

    async def test_non_json_response_wrapped(self, sama_credentials):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>oops</html>")

        with _mock_gateway(handler):
            with pytest.raises(SamaMoneyError):
                await request_payment("SUB_x_1", 2000, "+22370000000")
