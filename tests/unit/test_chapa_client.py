"""Unit tests for ChapaClient; the requests session is mocked."""
import re
from unittest.mock import MagicMock

import pytest

from khanut.chapa import ChapaClient
from khanut.errors import ChapaError


def response(status_code=200, body=None, text=""):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = status_code < 400
    resp.text = text
    if body is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = body
    return resp


@pytest.fixture
def session():
    s = MagicMock()
    s.headers = {}
    s.request.return_value = response(body={"message": "ok", "status": "success", "data": {}})
    return s


@pytest.fixture
def client(session):
    return ChapaClient("CHASECK_TEST-abc", base_url="https://api.chapa.co/v1/", timeout=5, session=session)


class TestRequests:
    def test_bearer_header(self, client, session):
        assert session.headers["Authorization"] == "Bearer CHASECK_TEST-abc"

    def test_initialize(self, client, session):
        client.initialize({"amount": "100", "tx_ref": "TX-1"})
        session.request.assert_called_once_with(
            "POST", "https://api.chapa.co/v1/transaction/initialize",
            timeout=5, json={"amount": "100", "tx_ref": "TX-1"},
        )

    def test_verify(self, client, session):
        client.verify("TX-1")
        session.request.assert_called_once_with(
            "GET", "https://api.chapa.co/v1/transaction/verify/TX-1", timeout=5,
        )

    def test_verify_rejects_path_segments(self, client, session):
        with pytest.raises(ChapaError) as exc:
            client.verify("../../balances")
        assert exc.value.status_code == 400
        session.request.assert_not_called()

    def test_mobile_initialize(self, client, session):
        client.mobile_initialize({"phone_number": "0911000000"})
        args, kwargs = session.request.call_args
        assert args == ("POST", "https://api.chapa.co/v1/transaction/mobile-initialize")
        assert kwargs["json"] == {"phone_number": "0911000000"}

    def test_direct_charge_type_in_query(self, client, session):
        payload = {"amount": "10", "mobile": "0911000000", "tx_ref": "TX-1", "type": "telebirr"}
        client.direct_charge(payload)
        args, kwargs = session.request.call_args
        assert args == ("POST", "https://api.chapa.co/v1/charges")
        assert kwargs["params"] == {"type": "telebirr"}
        assert kwargs["data"] == {"amount": "10", "mobile": "0911000000", "tx_ref": "TX-1"}
        # caller's dict untouched
        assert payload["type"] == "telebirr"

    def test_authorize_direct_charge(self, client, session):
        client.authorize_direct_charge({"reference": "R1", "client": "C1", "type": "mpesa"})
        args, kwargs = session.request.call_args
        assert args == ("POST", "https://api.chapa.co/v1/validate")
        assert kwargs["params"] == {"type": "mpesa"}
        assert kwargs["data"] == {"reference": "R1", "client": "C1"}

    def test_returns_body(self, client, session):
        session.request.return_value = response(body={"status": "success", "data": {"status": "success"}})
        assert client.verify("TX-1")["data"]["status"] == "success"


class TestErrors:
    def test_provider_error(self, client, session):
        session.request.return_value = response(400, {"message": "Invalid currency", "status": "failed"})
        with pytest.raises(ChapaError) as exc:
            client.initialize({})
        assert exc.value.status_code == 400
        assert exc.value.message == "Invalid currency"
        assert exc.value.payload["status"] == "failed"

    def test_non_json_error(self, client, session):
        session.request.return_value = response(502, text="Bad Gateway")
        with pytest.raises(ChapaError) as exc:
            client.verify("TX-1")
        assert exc.value.message == "Bad Gateway"

    def test_structured_message(self, client, session):
        session.request.return_value = response(400, {"message": {"email": ["invalid"]}})
        with pytest.raises(ChapaError) as exc:
            client.initialize({})
        assert "email" in exc.value.message


class TestGenTxRef:
    def test_default(self, client):
        assert re.fullmatch(r"TX-[0-9A-Z]{15}", client.gen_tx_ref())

    def test_prefix_and_size(self, client):
        assert re.fullmatch(r"KH-[0-9A-Z]{8}", client.gen_tx_ref(prefix="KH", size=8))

    def test_remove_prefix(self, client):
        assert re.fullmatch(r"[0-9A-Z]{20}", client.gen_tx_ref(remove_prefix=True, size=20))

    def test_unique(self, client):
        refs = {client.gen_tx_ref() for _ in range(200)}
        assert len(refs) == 200
