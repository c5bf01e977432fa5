"""
Réconciliation des issues de transaction XPay (webhook serveur et redirection navigateur).

Machine d'états: PENDING -> SUCCESSFUL | FAILED (terminaux, premier statut enregistré conservé).
- webhook: l'identifiant marchand doit correspondre à XPAY_COMMUNITY_ID (sinon UnauthorizedError).
  Seule source autorisée à enregistrer le statut terminal dans le ledger.
- redirect: non authentifiée, lit le ledger sans jamais y écrire de statut; un statut déjà
  enregistré par le webhook l'emporte. N'agit que sur le panier du visiteur.
- SUCCESSFUL: vidage du panier au plus une fois par (transaction, panier), puis notification
  best-effort au plus une fois par transaction (webhook uniquement).
- FAILED / autre: panier intact, indicateur d'échec retourné.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError as SchemaError

from storefront import config
from storefront.cart.service import clear_cart
from storefront.cart.store import CartStore, server_side_store
from storefront.catalog import repository as catalog_repo
from storefront.notifications import mailer
from storefront.payments import amounts
from storefront.payments.ledger import TransactionLedger, get_ledger
from storefront.payments.models import CallbackNotification, CustomFields, TransactionStatus
from storefront.utils.errors import CatalogUnavailableError, InvalidCallbackError, UnauthorizedError

logger = logging.getLogger(__name__)

SOURCES = ("webhook", "redirect")
TERMINAL_STATUSES = (TransactionStatus.SUCCESSFUL.value, TransactionStatus.FAILED.value)
NOTIFY_EFFECT = "notify"

Notifier = Callable[[mailer.PaymentEmailData], Any]


@dataclass
class ReconcileResult:
    transaction_id: str
    status: str
    source: str
    member_id: Optional[str] = None
    cart_cleared: bool = False
    notified: bool = False
    duplicate: bool = False
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == TransactionStatus.SUCCESSFUL.value


def _parse(payload: Union[Mapping[str, Any], CallbackNotification]) -> CallbackNotification:
    if isinstance(payload, CallbackNotification):
        notification = payload
    else:
        try:
            notification = CallbackNotification.model_validate(dict(payload or {}))
        except SchemaError as e:
            raise InvalidCallbackError(f"Callback illisible: {e.error_count()} erreur(s)") from e
    if not notification.transaction_id or not notification.transaction_status:
        raise InvalidCallbackError("transaction_id ou transaction_status manquant")
    return notification


def _check_merchant(notification: CallbackNotification) -> None:
    expected = config.XPAY_COMMUNITY_ID
    if not expected or notification.merchant_id != expected:
        raise UnauthorizedError(
            f"merchant_id inattendu ({notification.merchant_id!r}) pour la transaction {notification.transaction_id}"
        )


def _check_unit_scale(notification: CallbackNotification) -> None:
    if notification.total_amount is None or notification.total_amount_piasters is None:
        return
    expected = amounts.to_minor(amounts.from_wire(notification.total_amount))
    if expected != notification.total_amount_piasters:
        logger.warning(
            "payments.callback unit-scale anomaly transaction_id=%s total_amount=%s piasters=%s",
            notification.transaction_id, notification.total_amount, notification.total_amount_piasters,
        )


def _record_status(ledger: TransactionLedger, transaction_id: str, status: str) -> Tuple[str, bool]:
    """
    Webhook authentifié: seul à écrire le statut terminal.
    Retourne (statut stocké, doublon); le statut relu après SET NX fait foi.
    """
    if status not in TERMINAL_STATUSES:
        return ledger.status_of(transaction_id) or status, False
    if ledger.record(transaction_id, status):
        return status, False
    stored = ledger.status_of(transaction_id) or status
    if stored != status:
        logger.warning(
            "payments.callback transaction_id=%s already %s, ignoring %s", transaction_id, stored, status
        )
    return stored, True


def _observed_status(ledger: TransactionLedger, transaction_id: str, status: str) -> str:
    """Redirection navigateur (non authentifiée): lit le ledger, n'y écrit jamais de statut."""
    stored = ledger.status_of(transaction_id)
    if stored and stored != status:
        logger.warning(
            "payments.success transaction_id=%s redirect says %s but webhook recorded %s",
            transaction_id, status, stored,
        )
        return stored
    return status


def _clear_once(
    store: CartStore, ledger: TransactionLedger, transaction_id: str, fields: CustomFields
) -> Tuple[bool, List[Tuple[str, int]]]:
    cart = store.read()
    items = [(i.id, i.qty) for i in cart.items]
    if fields.cart_ref and cart.ref != fields.cart_ref:
        logger.warning(
            "payments.callback transaction_id=%s cart_ref mismatch (%s != %s), cart left untouched",
            transaction_id, cart.ref, fields.cart_ref,
        )
        return False, items
    if not ledger.claim(transaction_id, f"clear:{cart.ref}"):
        logger.info("payments.callback transaction_id=%s cart %s already cleared", transaction_id, cart.ref)
        return False, items
    clear_cart(store)
    logger.info("payments.callback transaction_id=%s cleared cart %s (%s lines)", transaction_id, cart.ref, len(items))
    return True, items


def _email_lines(items: List[Tuple[str, int]]) -> List[mailer.EmailLine]:
    """Lignes du mail enrichies (nom, prix) depuis le catalogue; ids seuls si le CMS ne répond pas."""
    lines = [mailer.EmailLine(product_id=pid, qty=qty) for pid, qty in items]
    if not lines:
        return lines
    try:
        products = catalog_repo.get_products_map([line.product_id for line in lines])
    except CatalogUnavailableError as e:
        logger.warning("payments.callback catalog lookup for email skipped: %s", e.message)
        return lines
    for line in lines:
        product = products.get(line.product_id)
        if product:
            line.name = str(product.get("title") or product.get("name") or "")
            line.unit_price = catalog_repo.price_from_product(product)
    return lines


def _notify_once(
    notifier: Notifier,
    ledger: TransactionLedger,
    notification: CallbackNotification,
    fields: CustomFields,
    items: List[Tuple[str, int]],
) -> bool:
    if not ledger.claim(notification.transaction_id, NOTIFY_EFFECT):
        return False
    data = mailer.PaymentEmailData(
        transaction_id=notification.transaction_id,
        transaction_uuid=notification.transaction_uuid or "",
        amount=amounts.from_wire(notification.total_amount or 0),
        currency=config.DEFAULT_CURRENCY,
        customer_name=fields.customer_name,
        customer_email=fields.customer_email,
        items=_email_lines(items),
    )
    try:
        notifier(data)
    except Exception:
        logger.exception("payments.callback notification failed transaction_id=%s", notification.transaction_id)
        return False
    return True


def reconcile(
    payload: Union[Mapping[str, Any], CallbackNotification],
    *,
    source: str = "webhook",
    cart_store: Optional[CartStore] = None,
    ledger: Optional[TransactionLedger] = None,
    notifier: Optional[Notifier] = None,
) -> ReconcileResult:
    """
    Applique les effets locaux d'une issue de transaction.
    - InvalidCallbackError: transaction_id / transaction_status manquant ou payload illisible.
    - UnauthorizedError (webhook): merchant_id différent de la communauté configurée.
    - cart_store: panier à vider; pour le webhook, à défaut, le panier Redis désigné par cart_ref.
    Idempotent: une redélivrance ne revide pas un panier déjà vidé ni ne renotifie.
    """
    if source not in SOURCES:
        raise ValueError(f"source inconnue: {source}")
    notification = _parse(payload)
    if source == "webhook":
        _check_merchant(notification)

    ledger = ledger or get_ledger()
    fields = notification.custom_fields()
    if source == "webhook":
        status, duplicate = _record_status(ledger, notification.transaction_id, notification.transaction_status)
    else:
        status, duplicate = _observed_status(ledger, notification.transaction_id, notification.transaction_status), False
    result = ReconcileResult(
        transaction_id=notification.transaction_id,
        status=status,
        source=source,
        member_id=notification.member_id,
        duplicate=duplicate,
    )
    logger.info(
        "payments.callback source=%s transaction_id=%s status=%s duplicate=%s",
        source, result.transaction_id, status, duplicate,
    )
    _check_unit_scale(notification)

    if not result.succeeded:
        result.error = "payment_failed" if status == TransactionStatus.FAILED.value else "payment_not_completed"
        return result

    store = cart_store
    if store is None and source == "webhook":
        store = server_side_store(fields.cart_ref)
    items: List[Tuple[str, int]] = []
    if store is not None:
        result.cart_cleared, items = _clear_once(store, ledger, result.transaction_id, fields)

    if source == "webhook":
        result.notified = _notify_once(notifier or mailer.notify_payment, ledger, notification, fields, items)
    return result
