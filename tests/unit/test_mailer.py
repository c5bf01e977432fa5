import json
from decimal import Decimal

import httpx

from storefront import config
from storefront.notifications import mailer


def _data(**overrides):
    values = dict(
        transaction_id="123",
        amount=Decimal("210.00"),
        currency="EGP",
        customer_name="Ada <script>",
        customer_email="ada@example.com",
        transaction_uuid="uuid-123",
        items=[mailer.EmailLine(product_id="p1", qty=2)],
    )
    values.update(overrides)
    return mailer.PaymentEmailData(**values)


def test_send_is_skipped_without_api_key():
    result = mailer.send_payment_confirmation_to_customer(_data())
    assert result == {"success": False, "error": "disabled"}


def test_customer_confirmation_posts_to_resend(monkeypatch):
    monkeypatch.setattr(config, "RESEND_API_KEY", "re_test")
    seen = {}

    def handler(request: httpx.Request):
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "email-1"})

    client = httpx.Client(transport=httpx.MockTransport(handler))
    result = mailer.send_payment_confirmation_to_customer(_data(), client=client)

    assert result == {"success": True, "data": {"id": "email-1"}}
    assert seen["auth"] == "Bearer re_test"
    assert seen["body"]["to"] == ["ada@example.com"]
    assert "123" in seen["body"]["subject"]
    assert "&lt;script&gt;" in seen["body"]["html"]
    assert "p1 x2" in seen["body"]["html"]


def test_failures_are_reported_not_raised(monkeypatch, caplog):
    monkeypatch.setattr(config, "RESEND_API_KEY", "re_test")
    monkeypatch.setattr(config, "ADMIN_NOTIFY_EMAIL", "admin@example.com")

    rejected = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(422, text="bad from")))
    assert mailer.send_payment_notification_to_admin(_data(), client=rejected)["success"] is False

    def handler(request):
        raise httpx.ConnectError("no route", request=request)

    unreachable = httpx.Client(transport=httpx.MockTransport(handler))
    result = mailer.send_payment_confirmation_to_customer(_data(), client=unreachable)
    assert result["success"] is False
    assert "mailer.send error" in caplog.text


def test_missing_recipients_are_skipped():
    assert mailer.send_payment_confirmation_to_customer(_data(customer_email=""))["error"] == "no_recipient"
    assert mailer.send_payment_notification_to_admin(_data())["error"] == "no_recipient"


def test_notify_payment_sends_both(monkeypatch):
    sent = []
    monkeypatch.setattr(mailer, "send_payment_confirmation_to_customer", lambda d: sent.append("customer") or {"success": True})
    monkeypatch.setattr(mailer, "send_payment_notification_to_admin", lambda d: sent.append("admin") or {"success": True})
    result = mailer.notify_payment(_data())
    assert sent == ["customer", "admin"]
    assert result["customer"]["success"] and result["admin"]["success"]


def test_items_show_names_line_totals_and_reference(monkeypatch):
    monkeypatch.setattr(config, "RESEND_API_KEY", "re_test")
    monkeypatch.setattr(config, "ADMIN_NOTIFY_EMAIL", "admin@example.com")
    bodies = []

    def handler(request: httpx.Request):
        bodies.append(json.loads(request.content)["html"])
        return httpx.Response(200, json={"id": "email-2"})

    client = httpx.Client(transport=httpx.MockTransport(handler))
    data = _data(items=[mailer.EmailLine(product_id="p2", qty=2, name="Produit <2>", unit_price=Decimal("25.50"))])
    mailer.send_payment_confirmation_to_customer(data, client=client)
    mailer.send_payment_notification_to_admin(data, client=client)

    for body in bodies:
        assert "Produit &lt;2&gt; x2 : 51.00 EGP" in body
        assert "uuid-123" in body
