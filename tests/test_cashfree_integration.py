"""Tests for Cashfree integration module (app/integrations/cashfree.py)"""
import httpx
import pytest
from unittest.mock import Mock, MagicMock, patch

from app.integrations.cashfree import (
    CardMethod,
    CashfreeError,
    NetbankingMethod,
    UnknownMethod,
    UpiMethod,
    extract_utr,
    parse_payment_method,
    select_payment,
)


def _mock_client(response=None, side_effect=None):
    client = MagicMock()
    client.__enter__ = Mock(return_value=client)
    client.__exit__ = Mock(return_value=False)
    if side_effect is not None:
        client.request.side_effect = side_effect
    else:
        client.request.return_value = response
    return client


def _response(status_code=200, body=None, text=""):
    resp = Mock()
    resp.status_code = status_code
    resp.json.return_value = body
    resp.text = text
    return resp


def _settings(mock_settings, environment="sandbox"):
    mock_settings.cashfree_client_id = "cf-id"
    mock_settings.cashfree_client_secret = "cf-secret"
    mock_settings.cashfree_api_version = "2023-08-01"
    mock_settings.cashfree_timeout_seconds = 15
    mock_settings.order_currency = "INR"
    mock_settings.cashfree_base_url = (
        "https://api.cashfree.com/pg" if environment == "production"
        else "https://sandbox.cashfree.com/pg"
    )


class TestFetchOrder:
    def test_returns_order_payload(self):
        order = {"order_id": "order_1", "order_status": "PAID", "order_amount": 1000}
        client = _mock_client(_response(200, order))

        with patch("app.integrations.cashfree.settings") as mock_settings:
            _settings(mock_settings)
            with patch("httpx.Client", return_value=client):
                from app.integrations.cashfree import fetch_order
                result = fetch_order("order_1")

        assert result == order
        method, url = client.request.call_args[0]
        assert method == "GET"
        assert url == "https://sandbox.cashfree.com/pg/orders/order_1"

    def test_sends_auth_and_version_headers(self):
        client = _mock_client(_response(200, {}))

        with patch("app.integrations.cashfree.settings") as mock_settings:
            _settings(mock_settings)
            with patch("httpx.Client", return_value=client):
                from app.integrations.cashfree import fetch_order
                fetch_order("order_1")

        headers = client.request.call_args[1]["headers"]
        assert headers["x-client-id"] == "cf-id"
        assert headers["x-client-secret"] == "cf-secret"
        assert headers["x-api-version"] == "2023-08-01"

    def test_production_uses_live_base_url(self):
        client = _mock_client(_response(200, {}))

        with patch("app.integrations.cashfree.settings") as mock_settings:
            _settings(mock_settings, environment="production")
            with patch("httpx.Client", return_value=client):
                from app.integrations.cashfree import fetch_order
                fetch_order("order_9")

        assert client.request.call_args[0][1] == "https://api.cashfree.com/pg/orders/order_9"

    def test_non_2xx_raises(self):
        client = _mock_client(_response(404, None, text="order not found"))

        with patch("app.integrations.cashfree.settings") as mock_settings:
            _settings(mock_settings)
            with patch("httpx.Client", return_value=client):
                from app.integrations.cashfree import fetch_order
                with pytest.raises(CashfreeError) as exc_info:
                    fetch_order("missing")

        assert exc_info.value.status_code == 404
        assert exc_info.value.body == "order not found"

    def test_transport_error_raises(self):
        client = _mock_client(side_effect=httpx.ConnectError("boom"))

        with patch("app.integrations.cashfree.settings") as mock_settings:
            _settings(mock_settings)
            with patch("httpx.Client", return_value=client):
                from app.integrations.cashfree import fetch_order
                with pytest.raises(CashfreeError):
                    fetch_order("order_1")


class TestFetchPayments:
    def test_returns_list(self):
        payments = [{"cf_payment_id": 1, "payment_status": "SUCCESS"}]
        client = _mock_client(_response(200, payments))

        with patch("app.integrations.cashfree.settings") as mock_settings:
            _settings(mock_settings)
            with patch("httpx.Client", return_value=client):
                from app.integrations.cashfree import fetch_payments
                result = fetch_payments("order_1")

        assert result == payments
        assert client.request.call_args[0][1].endswith("/orders/order_1/payments")

    def test_non_list_body_returns_empty(self):
        client = _mock_client(_response(200, {"message": "weird"}))

        with patch("app.integrations.cashfree.settings") as mock_settings:
            _settings(mock_settings)
            with patch("httpx.Client", return_value=client):
                from app.integrations.cashfree import fetch_payments
                assert fetch_payments("order_1") == []


class TestCreateOrder:
    def test_posts_order_with_return_url(self):
        client = _mock_client(_response(200, {"payment_session_id": "session_abc"}))

        with patch("app.integrations.cashfree.settings") as mock_settings:
            _settings(mock_settings)
            with patch("httpx.Client", return_value=client):
                from app.integrations.cashfree import create_order
                result = create_order(
                    order_id="order_1",
                    amount=4000.0,
                    customer_id="user-1",
                    customer_email="student@test.com",
                    customer_phone="9876543210",
                    return_url="https://api.test/payments/verify?order_id=order_1",
                )

        assert result["payment_session_id"] == "session_abc"
        method, url = client.request.call_args[0]
        assert method == "POST"
        assert url.endswith("/orders")
        payload = client.request.call_args[1]["json"]
        assert payload["order_amount"] == 4000.0
        assert payload["order_currency"] == "INR"
        assert payload["customer_details"]["customer_phone"] == "9876543210"
        assert payload["order_meta"]["return_url"].endswith("order_id=order_1")


class TestSelectPayment:
    def test_prefers_successful_attempt(self):
        failed = {"cf_payment_id": 1, "payment_status": "FAILED"}
        success = {"cf_payment_id": 2, "payment_status": "SUCCESS"}
        assert select_payment([failed, success]) is success

    def test_falls_back_to_first_attempt(self):
        first = {"cf_payment_id": 1, "payment_status": "FAILED"}
        second = {"cf_payment_id": 2, "payment_status": "USER_DROPPED"}
        assert select_payment([first, second]) is first

    def test_empty_or_none_returns_none(self):
        assert select_payment([]) is None
        assert select_payment(None) is None


class TestPaymentMethod:
    def test_upi_variant(self):
        payment = {"payment_method": {"upi": {"utr": "UTR123", "upi_id": "a@upi"}}}
        method = parse_payment_method(payment)
        assert isinstance(method, UpiMethod)
        assert method.utr == "UTR123"

    def test_netbanking_variant(self):
        payment = {"payment_method": {"netbanking": {"bank_reference": "NB9", "netbanking_bank_name": "HDFC"}}}
        method = parse_payment_method(payment)
        assert isinstance(method, NetbankingMethod)
        assert method.bank_reference == "NB9"
        assert method.bank_name == "HDFC"

    def test_card_variant(self):
        payment = {"payment_method": {"card": {"bank_reference": "CARDREF", "card_network": "visa"}}}
        method = parse_payment_method(payment)
        assert isinstance(method, CardMethod)
        assert method.bank_reference == "CARDREF"

    def test_unknown_variant(self):
        payment = {"payment_method": {"app": {"provider": "phonepe"}}}
        assert isinstance(parse_payment_method(payment), UnknownMethod)

    def test_missing_payment_is_unknown(self):
        assert isinstance(parse_payment_method(None), UnknownMethod)


class TestExtractUtr:
    def test_upi_wins_over_netbanking(self):
        payment = {
            "payment_method": {
                "upi": {"utr": "X"},
                "netbanking": {"bank_reference": "Y"},
            }
        }
        assert extract_utr(payment) == "X"

    def test_netbanking_wins_over_card(self):
        payment = {
            "payment_method": {
                "netbanking": {"bank_reference": "NB"},
                "card": {"bank_reference": "CARD"},
            }
        }
        assert extract_utr(payment) == "NB"

    def test_card_reference(self):
        payment = {"payment_method": {"card": {"bank_reference": "CARD"}}}
        assert extract_utr(payment) == "CARD"

    def test_falls_back_to_payment_level_reference(self):
        payment = {"payment_method": {"app": {}}, "bank_reference": "TOP"}
        assert extract_utr(payment) == "TOP"

    def test_none_when_nothing_present(self):
        assert extract_utr({"payment_method": {}}) is None
        assert extract_utr(None) is None


class TestOrderTagsAndTermination:
    def test_order_tags_sent_when_given(self):
        client = _mock_client(_response(200, {"payment_session_id": "session_abc"}))

        with patch("app.integrations.cashfree.settings") as mock_settings:
            _settings(mock_settings)
            with patch("httpx.Client", return_value=client):
                from app.integrations.cashfree import create_order
                create_order(
                    order_id="order_1",
                    amount=600.0,
                    customer_id="user-1",
                    customer_email="student@test.com",
                    customer_phone="9876543210",
                    return_url="https://api.test/payments/verify?order_id=order_1",
                    order_tags={"course_id": "c-1", "main_course": "0", "subjects": "Biology"},
                )

        assert client.request.call_args[1]["json"]["order_tags"]["subjects"] == "Biology"

    def test_terminate_patches_order_status(self):
        client = _mock_client(_response(200, {"order_status": "TERMINATED"}))

        with patch("app.integrations.cashfree.settings") as mock_settings:
            _settings(mock_settings)
            with patch("httpx.Client", return_value=client):
                from app.integrations.cashfree import terminate_order
                result = terminate_order("order_old")

        assert result["order_status"] == "TERMINATED"
        method, url = client.request.call_args[0]
        assert method == "PATCH"
        assert url == "https://sandbox.cashfree.com/pg/orders/order_old"
        assert client.request.call_args[1]["json"] == {"order_status": "TERMINATED"}

    def test_terminate_refused_raises(self):
        client = _mock_client(_response(400, None, text="order is already paid"))

        with patch("app.integrations.cashfree.settings") as mock_settings:
            _settings(mock_settings)
            with patch("httpx.Client", return_value=client):
                from app.integrations.cashfree import terminate_order
                with pytest.raises(CashfreeError):
                    terminate_order("order_old")
