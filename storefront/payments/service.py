"""
Cas d'usage 'payments': orchestre catalogue, panier, passerelle XPay et champs de corrélation.
Aucune fonction de ce module ne modifie le panier: il n'est vidé que par la réconciliation.
"""
import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import Iterator, Optional, Tuple

from storefront import config
from storefront.cart.models import Cart, now_ms
from storefront.cart.store import CartStore
from storefront.catalog import repository as catalog_repo
from storefront.payments import amounts
from storefront.payments import xpay_client
from storefront.payments.models import (
    BillingData,
    CustomFields,
    PaymentRequest,
    PrepareAmountRequest,
    PreparedAmount,
    Transaction,
    TransactionStatus,
)
from storefront.utils.errors import InvalidCartError, ValidationError

logger = logging.getLogger(__name__)


@contextmanager
def _gateway(client: Optional[xpay_client.XPayClient]) -> Iterator[xpay_client.XPayClient]:
    # Client fourni: l'appelant en garde la maîtrise; sinon créé puis fermé ici
    if client is not None:
        yield client
        return
    owned = xpay_client.create_xpay_client()
    try:
        yield owned
    finally:
        owned.close()


def compute_cart_total(cart: Cart) -> Decimal:
    """
    Somme prix_unitaire x quantité, prix relus au catalogue au moment de l'appel.
    - Un produit absent du catalogue compte pour 0.
    - InvalidCartError si le panier est vide ou si le total est <= 0.
    """
    if not cart.items:
        raise InvalidCartError("Panier vide")
    products = catalog_repo.get_products_map([i.id for i in cart.items])
    total = Decimal("0")
    for item in cart.items:
        product = products.get(item.id)
        if not product:
            logger.warning("payments.total product %s missing from catalog, counted as 0", item.id)
            continue
        total += catalog_repo.price_from_product(product) * item.qty
    if total <= 0:
        raise InvalidCartError("Le montant du panier doit être positif")
    return total


def prepare_amount(
    amount: Decimal,
    currency: str = "EGP",
    payment_method: str = "card",
    client: Optional[xpay_client.XPayClient] = None,
) -> PreparedAmount:
    """
    Demande à XPay le total payable (frais inclus) pour `amount`.
    - InvalidCartError si amount <= 0 (aucun appel passerelle).
    - GatewayError si la passerelle refuse; pas de relance automatique.
    """
    amount = Decimal(amount)
    if amount <= 0:
        raise InvalidCartError("Le montant doit être positif")
    request = PrepareAmountRequest(
        amount=amounts.to_wire(amount, currency),
        currency=currency,
        selected_payment_method=payment_method,
    )
    with _gateway(client) as gw:
        res = gw.prepare_amount(request)
    prepared = PreparedAmount(
        original_amount=amounts.quantize(amount, currency),
        total_amount=amounts.from_wire(res.data.total_amount, currency),
        currency=res.data.total_amount_currency or currency,
    )
    logger.info(
        "payments.prepare original=%s total=%s %s method=%s",
        prepared.original_amount, prepared.total_amount, prepared.currency, payment_method,
    )
    return prepared


def prepare_cart(
    cart: Cart,
    currency: str = "EGP",
    payment_method: str = "card",
    client: Optional[xpay_client.XPayClient] = None,
) -> PreparedAmount:
    return prepare_amount(compute_cart_total(cart), currency, payment_method, client=client)


def create_payment(
    billing: BillingData,
    prepared: PreparedAmount,
    payment_method: str,
    metadata: CustomFields,
    language: str = "en",
    client: Optional[xpay_client.XPayClient] = None,
) -> Transaction:
    """
    Crée la transaction XPay pour un montant préparé.
    - ValidationError si prepared.total_amount <= 0.
    - GatewayError sur toute réponse non-succès.
    - Aucun effet local: le panier reste intact pour permettre un nouvel essai.
    """
    if prepared.total_amount <= 0:
        raise ValidationError("Le montant à payer doit être positif")
    request = PaymentRequest(
        billing_data=billing,
        amount=amounts.to_wire(prepared.total_amount, prepared.currency),
        original_amount=amounts.to_wire(prepared.original_amount, prepared.currency),
        currency=prepared.currency,
        language=language,
        pay_using=payment_method,
        custom_fields=metadata.to_wire(),
    )
    with _gateway(client) as gw:
        data = gw.create_payment(request).data
    try:
        status = TransactionStatus(str(data.transaction_status).upper())
    except ValueError:
        logger.warning("payments.create unknown transaction_status=%s, treated as PENDING", data.transaction_status)
        status = TransactionStatus.PENDING
    return Transaction(
        transaction_id=data.transaction_id,
        transaction_uuid=data.transaction_uuid,
        status=status,
        iframe_url=data.iframe_url,
    )


def checkout(
    store: CartStore,
    billing: BillingData,
    currency: Optional[str] = None,
    payment_method: Optional[str] = None,
    language: str = "en",
    client: Optional[xpay_client.XPayClient] = None,
) -> Tuple[Transaction, PreparedAmount]:
    """
    Paiement complet: lecture panier -> total catalogue -> prepare-amount -> pay.
    Le montant est recalculé à chaque tentative (les frais dépendent du moyen de paiement).
    Retour: (Transaction, PreparedAmount)
    """
    currency = currency or config.DEFAULT_CURRENCY
    payment_method = payment_method or config.DEFAULT_PAYMENT_METHOD
    cart = store.read()
    with _gateway(client) as gw:
        prepared = prepare_cart(cart, currency, payment_method, client=gw)
        metadata = CustomFields(
            cart_items_count=len(cart.items),
            order_timestamp=now_ms(),
            cart_ref=cart.ref,
            customer_email=str(billing.email),
            customer_name=billing.name,
        )
        transaction = create_payment(billing, prepared, payment_method, metadata, language, client=gw)
    logger.info(
        "payments.checkout transaction_id=%s cart_ref=%s items=%s total=%s",
        transaction.transaction_id, cart.ref, len(cart.items), prepared.total_amount,
    )
    return transaction, prepared
