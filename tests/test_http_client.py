"""Transport behaviour: session headers, error taxonomy, save-invest token."""

import asyncio

import httpx
import pytest

from adapters.http_client import SaveInvestTransport, SecureApiTransport, build_async_client, raise_for_business_error
from core.domain.errors import BusinessError, TransportError
from core.domain.session import SessionState

from conftest import BASE_URL, SAVE_INVEST_URL


class TestBusinessErrors:
    def test_error_object_becomes_business_error(self):
        with pytest.raises(BusinessError) as excinfo:
            raise_for_business_error(
                {"error": {"code": "SCA.WRONG_AUTHENTICATION", "message": "nope", "values": {"left": 2}}},
                path="sca/validatePin",
            )
        assert excinfo.value.code == "SCA.WRONG_AUTHENTICATION"
        assert excinfo.value.message == "nope"
        assert excinfo.value.values == {"left": 2}
        assert excinfo.value.path == "sca/validatePin"

    def test_plain_error_string(self):
        with pytest.raises(BusinessError) as excinfo:
            raise_for_business_error({"error": "LOCKED"})
        assert excinfo.value.code == "LOCKED"

    @pytest.mark.parametrize("payload", [None, [], {"error": None}, {"error": {}}, {"accounts": []}])
    def test_other_payloads_pass(self, payload):
        raise_for_business_error(payload)

    def test_business_error_on_any_endpoint(self, bank, transport):
        bank.route("GET", "accounts", {"error": {"code": "X", "message": "y"}})
        with pytest.raises(BusinessError):
            asyncio.run(transport.call(SessionState(), "accounts"))


class TestSecureApiTransport:
    def test_session_headers_are_sent_and_refreshed(self, bank, transport):
        bank.route("GET", "accounts", [], headers={"Set-Cookie": "SESSION=new", "Ingdf-Auth-Token": "t2"})
        session = SessionState(cookie="SESSION=old", auth_token="t1")

        assert asyncio.run(transport.call(session, "accounts")) == []

        sent = bank.last("accounts").headers
        assert sent["cookie"] == "SESSION=old"
        assert sent["ingdf-auth-token"] == "t1"
        assert session.cookie == "SESSION=new"
        assert session.auth_token == "t2"

    def test_empty_body_is_none(self, bank, transport):
        bank.route("POST", "sca/sendOtp", content=b"")
        assert asyncio.run(transport.call(SessionState(), "sca/sendOtp", "POST", {})) is None

    def test_non_json_body_is_a_transport_error(self, bank, transport):
        bank.route("GET", "accounts", content=b"<html>maintenance</html>")
        with pytest.raises(TransportError, match="not JSON"):
            asyncio.run(transport.call(SessionState(), "accounts"))

    def test_http_status_is_a_transport_error(self, bank, transport):
        bank.route("GET", "accounts", {"message": "down"}, status=500)
        with pytest.raises(TransportError) as excinfo:
            asyncio.run(transport.call(SessionState(), "accounts"))
        assert excinfo.value.status_code == 500
        assert excinfo.value.path == "accounts"

    def test_network_failure_is_a_transport_error(self, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        client = build_async_client(settings, transport=httpx.MockTransport(handler))
        transport = SecureApiTransport(client, base_url=BASE_URL)
        with pytest.raises(TransportError) as excinfo:
            asyncio.run(transport.call(SessionState(), "session"))
        assert excinfo.value.status_code is None

    def test_cookies_from_the_response_update_the_session_even_on_failure(self, bank, transport):
        bank.route("GET", "accounts", {}, status=401, headers={"Set-Cookie": "SESSION=expired"})
        session = SessionState(cookie="SESSION=old")
        with pytest.raises(TransportError):
            asyncio.run(transport.call(session, "accounts"))
        assert session.cookie == "SESSION=expired"

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("https://cdn.bank.test/k.png", "https://cdn.bank.test/k.png"),
            ("/secure/api-v1/sca/keypad/k.png", "https://bank.test/secure/api-v1/sca/keypad/k.png"),
            ("sca/keypad/k.png", "https://bank.test/secure/api-v1/sca/keypad/k.png"),
        ],
    )
    def test_resource_urls(self, transport, url, expected):
        assert transport.resource_url(url) == expected

    def test_base_url_without_trailing_slash(self, http_client):
        transport = SecureApiTransport(http_client, base_url=BASE_URL.rstrip("/"))
        assert transport.url_for("login/cif?v2=true") == BASE_URL + "login/cif?v2=true"


class TestSaveInvestTransport:
    def test_token_is_generated_once_and_reused(self, bank, http_client, transport):
        bank.route("GET", "saveInvest/token/generate", {"token": "bearer-1"})
        bank.route("GET", "lifeinsurance/contract/C1", {"id": "C1"})
        save_invest = SaveInvestTransport(http_client, base_url=SAVE_INVEST_URL, secure=transport)
        session = SessionState(cookie="SESSION=s", auth_token="t")

        async def scenario():
            first = await save_invest.call(session, "lifeinsurance/contract/C1")
            second = await save_invest.call(session, "lifeinsurance/contract/C1")
            return first, second

        first, second = asyncio.run(scenario())

        assert first == second == {"id": "C1"}
        assert session.save_invest_token == "bearer-1"
        assert [c for c in bank.calls() if "token" in c] == ["GET saveInvest/token/generate"]
        sent = bank.last("lifeinsurance").headers
        assert sent["authorization"] == "Bearer bearer-1"
        assert sent["cookie"] == "SESSION=s"

    def test_token_response_without_token_is_a_transport_error(self, bank, http_client, transport):
        bank.route("GET", "saveInvest/token/generate", {"expiresIn": 300})
        save_invest = SaveInvestTransport(http_client, base_url=SAVE_INVEST_URL, secure=transport)
        session = SessionState()

        with pytest.raises(TransportError) as excinfo:
            asyncio.run(save_invest.call(session, "lifeinsurance/contract/C1"))

        assert excinfo.value.path == "saveInvest/token/generate"
        assert session.save_invest_token is None

    def test_save_invest_http_status_is_a_transport_error(self, bank, http_client, transport):
        bank.route("GET", "saveInvest/token/generate", {"token": "bearer-1"})
        bank.route("GET", "lifeinsurance/contract/C1", {"message": "gone"}, status=410)
        save_invest = SaveInvestTransport(http_client, base_url=SAVE_INVEST_URL, secure=transport)

        with pytest.raises(TransportError) as excinfo:
            asyncio.run(save_invest.call(SessionState(), "lifeinsurance/contract/C1"))
        assert excinfo.value.status_code == 410
        assert excinfo.value.path == "lifeinsurance/contract/C1"

    def test_missing_token_is_not_cached(self, bank, http_client, transport):
        bank.route("GET", "saveInvest/token/generate", {"error": {"code": "NOT_ELIGIBLE"}})
        save_invest = SaveInvestTransport(http_client, base_url=SAVE_INVEST_URL, secure=transport)
        session = SessionState()

        with pytest.raises(BusinessError):
            asyncio.run(save_invest.call(session, "lifeinsurance/contract/C1"))
        assert session.save_invest_token is None
        assert not any("lifeinsurance" in c for c in bank.calls())
