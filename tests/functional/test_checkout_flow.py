"""
Parcours complet: panier -> prepare -> pay -> webhook XPay -> retour navigateur.
Panier et ledger côté serveur (Redis simulé), comme en production multi-workers.
"""
from storefront import config

BILLING = {"name": "Ada Lovelace", "email": "ada@example.com", "phone_number": "+201000000000"}


def _callback_from_payment(fake_xpay, status="SUCCESSFUL"):
    body = fake_xpay.body_for("/payments/pay/variable-amount/")
    payload = {
        "member_id": "m-1",
        "payment_id": "pay-1",
        "merchant_id": config.XPAY_COMMUNITY_ID,
        "total_amount": body["amount"],
        "total_amount_piasters": int(round(body["amount"] * 100)),
        "transaction_id": 123,
        "transaction_status": status,
    }
    # XPay renvoie les champs personnalisés à plat dans le callback
    payload.update({f["field_label"]: f["field_value"] for f in body["custom_fields"]})
    return payload


def test_full_checkout_with_server_side_cart(client, catalog, fake_xpay, fake_redis, monkeypatch):
    monkeypatch.setattr(config, "CART_STORE_BACKEND", "redis")
    monkeypatch.setattr(config, "LEDGER_BACKEND", "redis")
    notified = []
    monkeypatch.setattr("storefront.notifications.mailer.notify_payment", lambda data: notified.append(data))

    client.post("/api/cart/items", json={"product_id": "p1", "qty": 2})
    client.post("/api/cart/items", json={"product_id": "p2", "qty": 1})
    client.post("/api/cart/items", json={"product_id": "p3", "qty": 1})
    assert client.get("/api/cart/count").json()["count"] == 4

    prepared = client.post("/api/checkout/prepare", json={"paymentMethod": "card"}).json()
    assert prepared["original_amount"] == 235.5
    assert prepared["total_amount"] == 245.5

    paid = client.post("/api/checkout/pay", json={"billingData": BILLING}).json()
    assert paid["iframe_url"].startswith("https://staging.xpay.app/")
    # pas d'effet local avant confirmation
    assert client.get("/api/cart/count").json()["count"] == 4

    # Webhook serveur: retrouve le panier via cart_ref et le vide
    callback = _callback_from_payment(fake_xpay)
    assert client.post("/api/xpay/callback", json=callback).json()["status"] == "received"
    assert client.get("/api/cart").json()["items"] == []
    assert len(notified) == 1
    assert notified[0].customer_email == "ada@example.com"
    assert sorted((line.product_id, line.qty) for line in notified[0].items) == [("p1", 2), ("p2", 1), ("p3", 1)]
    assert {line.name for line in notified[0].items} == {"Produit 1", "Produit 2", "Produit 3"}

    # Le navigateur revient ensuite: confirmation sans double effet
    res = client.get(
        "/api/checkout/success",
        params={"transaction_id": "123", "transaction_status": "SUCCESSFUL", "member_id": "m-1"},
        follow_redirects=False,
    )
    assert res.status_code == 303
    assert res.headers["location"].startswith(config.CHECKOUT_SUCCESS_PATH)

    # Nouvel achat en cours puis redélivrance tardive du webhook: le nouveau panier est conservé
    client.post("/api/cart/items", json={"product_id": "p3", "qty": 1})
    assert client.post("/api/xpay/callback", json=callback).status_code == 200
    assert client.get("/api/cart").json()["items"] == [{"id": "p3", "qty": 1}]
    assert len(notified) == 1


def test_failed_payment_keeps_cart_for_retry(client, catalog, fake_xpay):
    client.post("/api/cart/items", json={"product_id": "p1", "qty": 1})
    client.post("/api/checkout/pay", json={"billingData": BILLING})

    callback = _callback_from_payment(fake_xpay, status="FAILED")
    assert client.post("/api/xpay/callback", json=callback).json()["status"] == "received"

    res = client.get(
        "/api/checkout/success",
        params={"transaction_id": "123", "transaction_status": "FAILED"},
        follow_redirects=False,
    )
    assert res.headers["location"] == f"{config.CART_PATH}?error=payment_failed"
    assert client.get("/api/cart").json()["items"] == [{"id": "p1", "qty": 1}]

    # nouvel essai possible avec le même panier
    retry = client.post("/api/checkout/pay", json={"billingData": BILLING})
    assert retry.status_code == 200
