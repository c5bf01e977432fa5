"""
Notifications e-mail de paiement (acheteur + admin) via l'API HTTP Resend.
- Appel direct en httpx (pas de SDK), comme pour les autres services tiers.
- Best-effort: aucune fonction de ce module ne lève; le résultat est journalisé et retourné.
"""
import html
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx

from storefront import config

logger = logging.getLogger(__name__)


@dataclass
class EmailLine:
    product_id: str
    qty: int
    name: str = ""
    unit_price: Optional[Decimal] = None

    @property
    def line_total(self) -> Optional[Decimal]:
        return None if self.unit_price is None else self.unit_price * self.qty


@dataclass
class PaymentEmailData:
    transaction_id: str
    amount: Decimal
    currency: str
    customer_name: str = ""
    customer_email: str = ""
    payment_method: str = "card"
    transaction_uuid: str = ""
    items: List[EmailLine] = field(default_factory=list)


def _items_html(items: List[EmailLine], currency: str) -> str:
    if not items:
        return ""
    rows = []
    for line in items:
        row = f"{html.escape(line.name or line.product_id)} x{line.qty}"
        if line.line_total is not None:
            row += f" : {line.line_total} {html.escape(currency)}"
        rows.append(f"<li>{row}</li>")
    return f"<h4>Articles</h4><ul>{''.join(rows)}</ul>"


def _send(to: List[str], subject: str, body_html: str, client: Optional[httpx.Client] = None) -> Dict[str, Any]:
    if not config.RESEND_API_KEY:
        logger.info("mailer.send skipped (RESEND_API_KEY manquant) subject=%s", subject)
        return {"success": False, "error": "disabled"}
    payload = {"from": config.MAIL_FROM, "to": to, "subject": subject, "html": body_html}
    headers = {"Authorization": f"Bearer {config.RESEND_API_KEY}", "Content-Type": "application/json"}
    try:
        http = client or httpx
        res = http.post(config.RESEND_API_URL, json=payload, headers=headers, timeout=10)
        if not res.is_success:
            logger.error("mailer.send failed status=%s body=%s", res.status_code, res.text[:300])
            return {"success": False, "error": res.status_code}
        logger.info("mailer.send ok subject=%s", subject)
        return {"success": True, "data": res.json() if res.content else {}}
    except Exception as e:
        logger.exception("mailer.send error subject=%s", subject)
        return {"success": False, "error": str(e)}


def send_payment_confirmation_to_customer(data: PaymentEmailData, client: Optional[httpx.Client] = None) -> Dict[str, Any]:
    if not data.customer_email:
        return {"success": False, "error": "no_recipient"}
    body = (
        "<h1>Paiement confirmé</h1>"
        f"<p>Bonjour {html.escape(data.customer_name)},</p>"
        "<p>Votre paiement a bien été traité.</p>"
        f"<p><strong>Transaction:</strong> {html.escape(data.transaction_id)}</p>"
        f"<p><strong>Référence:</strong> {html.escape(data.transaction_uuid)}</p>"
        f"<p><strong>Montant:</strong> {data.amount} {html.escape(data.currency)}</p>"
        f"<p><strong>Moyen de paiement:</strong> {html.escape(data.payment_method)}</p>"
        f"{_items_html(data.items, data.currency)}"
    )
    return _send([data.customer_email], f"Confirmation de paiement - Commande #{data.transaction_id}", body, client)


def send_payment_notification_to_admin(data: PaymentEmailData, client: Optional[httpx.Client] = None) -> Dict[str, Any]:
    if not config.ADMIN_NOTIFY_EMAIL:
        return {"success": False, "error": "no_recipient"}
    body = (
        f"<h1>Nouveau paiement: {data.amount} {html.escape(data.currency)}</h1>"
        f"<p>Client: {html.escape(data.customer_name)} ({html.escape(data.customer_email)})</p>"
        f"<p><strong>Transaction:</strong> {html.escape(data.transaction_id)}</p>"
        f"<p><strong>Référence:</strong> {html.escape(data.transaction_uuid)}</p>"
        f"{_items_html(data.items, data.currency)}"
    )
    return _send([config.ADMIN_NOTIFY_EMAIL], f"Nouveau paiement reçu - {data.amount} {data.currency}", body, client)


def notify_payment(data: PaymentEmailData) -> Dict[str, Any]:
    """Envoie les deux e-mails; retourne {"customer": ..., "admin": ...}."""
    return {
        "customer": send_payment_confirmation_to_customer(data),
        "admin": send_payment_notification_to_admin(data),
    }
