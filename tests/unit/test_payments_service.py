from decimal import Decimal

import httpx
import pytest

from storefront.cart.models import Cart, CartItem
from storefront.cart.store import InMemoryCartStore
from storefront.payments import service as payments_service
from storefront.payments.models import BillingData, CustomFields, PreparedAmount, TransactionStatus
from storefront.utils.errors import GatewayError, InvalidCartError, ValidationError

BILLING = BillingData(name="Ada Lovelace", email="ada@example.com", phone_number="+201000000000")


def _cart(*lines) -> Cart:
    return Cart(items=[CartItem(id=pid, qty=qty) for pid, qty in lines], ref="ref-1")


def test_compute_cart_total_uses_catalog_prices(catalog):
    assert payments_service.compute_cart_total(_cart(("p1", 2), ("p2", 2))) == Decimal("251.00")


def test_compute_cart_total_missing_product_counts_zero(catalog, caplog):
    assert payments_service.compute_cart_total(_cart(("p1", 1), ("ghost", 3))) == Decimal("100")
    assert "missing from catalog" in caplog.text


@pytest.mark.parametrize("cart", [_cart(), _cart(("ghost", 1))])
def test_compute_cart_total_rejects_empty_or_zero(catalog, cart):
    with pytest.raises(InvalidCartError):
        payments_service.compute_cart_total(cart)


def test_prepare_cart_scenario_fee_included(catalog, fake_xpay):
    # p1 x2 à 100 EGP, la passerelle ajoute 10 EGP de frais
    prepared = payments_service.prepare_cart(_cart(("p1", 2)))
    assert prepared.original_amount == Decimal("200")
    assert prepared.total_amount == Decimal("210")
    assert prepared.currency == "EGP"
    assert fake_xpay.body_for("/payments/prepare-amount/")["amount"] == 200.0


def test_prepare_zero_total_fails_without_gateway_call(catalog, fake_xpay):
    store = InMemoryCartStore()
    store.write(_cart(("p1", 1)))
    cart = store.read()
    cart.items = []  # toutes les quantités retirées
    with pytest.raises(InvalidCartError):
        payments_service.prepare_cart(cart)
    with pytest.raises(InvalidCartError):
        payments_service.prepare_amount(Decimal("0"))
    assert fake_xpay.calls == []


def test_prepare_amount_gateway_failure_is_not_retried(fake_xpay):
    fake_xpay.fail_with["/payments/prepare-amount/"] = httpx.Response(503, text="unavailable")
    with pytest.raises(GatewayError):
        payments_service.prepare_amount(Decimal("50"))
    assert len(fake_xpay.calls) == 1


def test_create_payment_sends_total_and_custom_fields(fake_xpay):
    prepared = PreparedAmount(original_amount=Decimal("200"), total_amount=Decimal("210"), currency="EGP")
    metadata = CustomFields(cart_items_count=1, order_timestamp=1700000000000, cart_ref="ref-1")

    tx = payments_service.create_payment(BILLING, prepared, "card", metadata, language="ar")

    assert tx.transaction_id == "123"
    assert tx.transaction_uuid == "uuid-123"
    assert tx.status == TransactionStatus.PENDING
    assert tx.iframe_url.startswith("https://")
    body = fake_xpay.body_for("/payments/pay/variable-amount/")
    assert body["amount"] == 210.0
    assert body["original_amount"] == 200.0
    assert body["language"] == "ar"
    assert body["pay_using"] == "card"
    labels = {f["field_label"]: f["field_value"] for f in body["custom_fields"]}
    assert labels["cart_items_count"] == 1
    assert labels["cart_ref"] == "ref-1"


def test_create_payment_rejects_non_positive_total(fake_xpay):
    prepared = PreparedAmount(original_amount=Decimal("0"), total_amount=Decimal("0"), currency="EGP")
    with pytest.raises(ValidationError):
        payments_service.create_payment(BILLING, prepared, "card", CustomFields())
    assert fake_xpay.calls == []


def test_create_payment_unknown_status_is_pending(fake_xpay):
    fake_xpay.transaction_status = "PROCESSING"
    prepared = PreparedAmount(original_amount=Decimal("10"), total_amount=Decimal("11"), currency="EGP")
    tx = payments_service.create_payment(BILLING, prepared, "card", CustomFields())
    assert tx.status == TransactionStatus.PENDING


def test_checkout_reads_cart_without_mutating_it(catalog, fake_xpay):
    store = InMemoryCartStore()
    store.write(_cart(("p1", 2), ("p3", 1)))
    before = store.raw

    tx, prepared = payments_service.checkout(store, BILLING)

    assert store.raw == before
    assert prepared.original_amount == Decimal("210")
    assert prepared.total_amount == Decimal("220")
    assert fake_xpay.paths()[0].endswith("/payments/prepare-amount/")
    assert fake_xpay.paths()[1].endswith("/payments/pay/variable-amount/")
    labels = {f["field_label"]: f["field_value"] for f in fake_xpay.body_for("/variable-amount/")["custom_fields"]}
    assert labels["cart_items_count"] == 2
    assert labels["cart_ref"] == "ref-1"
    assert labels["customer_email"] == "ada@example.com"
    assert tx.transaction_id == "123"


def test_checkout_gateway_failure_leaves_cart_intact(catalog, fake_xpay):
    fake_xpay.fail_with["/payments/pay/variable-amount/"] = httpx.Response(500, text="oops")
    store = InMemoryCartStore()
    store.write(_cart(("p1", 1)))
    before = store.raw
    with pytest.raises(GatewayError):
        payments_service.checkout(store, BILLING)
    assert store.raw == before
