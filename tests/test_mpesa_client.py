import base64
from datetime import datetime

import pytest
import requests

from agricart.errors import UpstreamFailure
from agricart.services.mpesa import NAIROBI, MpesaClient, MpesaConfig, daraja_timestamp, stk_password


class FakeResponse:
    def __init__(self, status_code=200, data=None):
        self.status_code = status_code
        self._data = data

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._data is None:
            raise ValueError("no json")
        return self._data


class FakeSession:
    def __init__(self, token_response=None, push_response=None, raise_on_post=None):
        self.token_response = token_response or FakeResponse(200, {"access_token": "tok-1", "expires_in": "3599"})
        self.push_response = push_response or FakeResponse(
            200, {"CheckoutRequestID": "ws_CO_1", "MerchantRequestID": "m-1", "ResponseCode": "0"}
        )
        self.raise_on_post = raise_on_post
        self.gets = []
        self.posts = []

    def get(self, url, **kwargs):
        self.gets.append((url, kwargs))
        return self.token_response

    def post(self, url, **kwargs):
        self.posts.append((url, kwargs))
        if self.raise_on_post:
            raise self.raise_on_post
        return self.push_response


@pytest.fixture
def config():
    return MpesaConfig(
        consumer_key="key",
        consumer_secret="secret",
        business_short_code="174379",
        passkey="passkey",
        callback_url="https://api.example.com/api/payments/mpesa-callback",
        base_url="https://sandbox.safaricom.co.ke",
        timeout=7.0,
    )


def test_timestamp_format():
    when = datetime(2024, 3, 9, 8, 5, 1, tzinfo=NAIROBI)
    assert daraja_timestamp(when) == "20240309080501"


def test_password_is_base64_of_shortcode_passkey_timestamp():
    password = stk_password("174379", "passkey", "20240309080501")
    assert base64.b64decode(password).decode() == "174379passkey20240309080501"


def test_stk_push_sends_expected_payload(config):
    session = FakeSession()
    client = MpesaClient(config, session=session)

    result = client.stk_push(amount=199.5, phone_number="254708374149")

    assert result["CheckoutRequestID"] == "ws_CO_1"

    url, kwargs = session.gets[0]
    assert url == "https://sandbox.safaricom.co.ke/oauth/v1/generate"
    assert kwargs["auth"] == ("key", "secret")
    assert kwargs["params"] == {"grant_type": "client_credentials"}

    url, kwargs = session.posts[0]
    assert url == "https://sandbox.safaricom.co.ke/mpesa/stkpush/v1/processrequest"
    assert kwargs["headers"]["Authorization"] == "Bearer tok-1"
    assert kwargs["timeout"] == 7.0
    payload = kwargs["json"]
    assert payload["Amount"] == 200
    assert payload["PartyA"] == payload["PhoneNumber"] == "254708374149"
    assert payload["PartyB"] == payload["BusinessShortCode"] == "174379"
    assert payload["TransactionType"] == "CustomerPayBillOnline"
    assert payload["CallBackURL"] == config.callback_url
    decoded = base64.b64decode(payload["Password"]).decode()
    assert decoded == f"174379passkey{payload['Timestamp']}"


def test_callback_url_carries_secret(config):
    signed = MpesaConfig(**{**config.__dict__, "callback_secret": "abc"})
    assert signed.signed_callback_url == "https://api.example.com/api/payments/mpesa-callback?token=abc"


def test_gateway_error_message_is_surfaced(config):
    session = FakeSession(
        push_response=FakeResponse(400, {"requestId": "1", "errorCode": "400.002.02", "errorMessage": "Bad Request - Invalid Amount"})
    )

    with pytest.raises(UpstreamFailure) as exc:
        MpesaClient(config, session=session).stk_push(amount=1, phone_number="254708374149")

    assert exc.value.message == "Bad Request - Invalid Amount"


def test_token_failure(config):
    session = FakeSession(token_response=FakeResponse(401, None))

    with pytest.raises(UpstreamFailure) as exc:
        MpesaClient(config, session=session).stk_push(amount=1, phone_number="254708374149")

    assert exc.value.message == "Failed to generate M-Pesa access token"
    assert session.posts == []


def test_network_error_is_upstream_failure(config):
    session = FakeSession(raise_on_post=requests.ConnectionError("reset"))

    with pytest.raises(UpstreamFailure):
        MpesaClient(config, session=session).stk_push(amount=1, phone_number="254708374149")


def test_unconfigured_client_refuses(config):
    blank = MpesaConfig(**{**config.__dict__, "consumer_key": ""})

    with pytest.raises(UpstreamFailure):
        MpesaClient(blank, session=FakeSession()).stk_push(amount=1, phone_number="254708374149")


def test_config_from_mapping_defaults():
    cfg = MpesaConfig.from_mapping({"MPESA_BUSINESS_SHORT_CODE": 174379, "MPESA_BASE_URL": "https://api.safaricom.co.ke/"})

    assert cfg.business_short_code == "174379"
    assert cfg.base_url == "https://api.safaricom.co.ke"
    assert cfg.timeout == 30.0
    assert cfg.is_configured is False
