import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.status import HTTP_303_SEE_OTHER

from storefront import config
from storefront.cart.store import CartStore, get_cart_store
from storefront.payments import amounts
from storefront.payments import reconciler
from storefront.payments import service as payments_service
from storefront.payments.models import BillingData
from storefront.utils.errors import InvalidCallbackError, UnauthorizedError
from storefront.utils.rate_limit import optional_rate_limit

logger = logging.getLogger(__name__)
checkout_router = APIRouter(prefix="/api/checkout", tags=["Checkout API"])
callback_router = APIRouter(prefix="/api/xpay", tags=["XPay"])


class PrepareBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    currency: Optional[str] = None
    payment_method: Optional[str] = Field(default=None, alias="paymentMethod")


class PayBody(PrepareBody):
    billing_data: BillingData = Field(alias="billingData")
    language: str = "en"


def _amounts_payload(prepared) -> Dict[str, Any]:
    return {
        "original_amount": amounts.to_wire(prepared.original_amount, prepared.currency),
        "total_amount": amounts.to_wire(prepared.total_amount, prepared.currency),
        "currency": prepared.currency,
    }


# module storefront.payments.views
@checkout_router.post("/prepare", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def prepare_checkout(body: PrepareBody, store: CartStore = Depends(get_cart_store)) -> Dict[str, Any]:
    """
    Calcule le total payable (frais inclus) du panier courant.
    - Prix relus au catalogue, total proposé à XPay (prepare-amount)
    - Réponse: {original_amount, total_amount, currency, cart_items}
    - Erreurs: 400 panier vide / total nul, 502 passerelle ou catalogue
    """
    cart = store.read()
    prepared = payments_service.prepare_cart(
        cart,
        currency=body.currency or config.DEFAULT_CURRENCY,
        payment_method=body.payment_method or config.DEFAULT_PAYMENT_METHOD,
    )
    return {**_amounts_payload(prepared), "cart_items": len(cart.items)}

@checkout_router.post("/pay", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def pay(body: PayBody, store: CartStore = Depends(get_cart_store)) -> Dict[str, Any]:
    """
    Crée la transaction XPay et renvoie l'URL de paiement (iframe) vers laquelle rediriger l'acheteur.
    Le panier n'est pas modifié: il ne sera vidé qu'à la confirmation du paiement.
    """
    transaction, prepared = payments_service.checkout(
        store,
        body.billing_data,
        currency=body.currency,
        payment_method=body.payment_method,
        language=body.language,
    )
    return {
        "iframe_url": transaction.iframe_url,
        "transaction_id": transaction.transaction_id,
        "transaction_uuid": transaction.transaction_uuid,
        "transaction_status": transaction.status.value,
        "amounts": _amounts_payload(prepared),
    }

@checkout_router.get("/success")
def checkout_success(request: Request, store: CartStore = Depends(get_cart_store)):
    """
    Retour navigateur après paiement (?transaction_id&transaction_status&member_id).
    - SUCCESSFUL: vide le panier du visiteur puis 303 vers la page de confirmation
    - Sinon: 303 vers le panier avec ?error=...
    - Échec interne (Redis, store): 303 vers le panier avec ?error=payment_processing
    """
    try:
        result = reconciler.reconcile(dict(request.query_params), source="redirect", cart_store=store)
    except InvalidCallbackError as e:
        logger.warning("payments.success invalid redirect: %s", e.message)
        response = RedirectResponse(url=f"{config.CART_PATH}?error=invalid_callback", status_code=HTTP_303_SEE_OTHER)
        return response
    except Exception:
        logger.exception("payments.success processing failed transaction_id=%s", request.query_params.get("transaction_id"))
        return RedirectResponse(url=f"{config.CART_PATH}?error=payment_processing", status_code=HTTP_303_SEE_OTHER)

    if result.succeeded:
        query = {"transaction_id": result.transaction_id}
        if result.member_id:
            query["member_id"] = result.member_id
        url = f"{config.CHECKOUT_SUCCESS_PATH}?{urlencode(query)}"
    else:
        url = f"{config.CART_PATH}?{urlencode({'error': result.error or 'payment_failed'})}"
    response = RedirectResponse(url=url, status_code=HTTP_303_SEE_OTHER)
    # Réponse construite ici: le cookie panier doit y être reporté explicitement
    store.bind(response)
    return response

@callback_router.post("/callback", include_in_schema=False)
async def xpay_callback(request: Request) -> Dict[str, Any]:
    """
    Webhook XPay (issue de transaction).
    - Toujours acquitté en 200 pour éviter les redélivrances en cascade
    - {"status": "received"} si traité, {"status": "rejected"} si non authentifié ou invalide
    """
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        logger.warning("payments.callback rejected: body is not a JSON object")
        return {"status": "rejected"}
    try:
        result = reconciler.reconcile(payload, source="webhook")
    except (UnauthorizedError, InvalidCallbackError) as e:
        logger.warning("payments.callback rejected: %s", e.message)
        return {"status": "rejected"}
    except Exception:
        logger.exception("payments.callback processing failed transaction_id=%s", payload.get("transaction_id"))
        return {"status": "received"}
    return {"status": "received", "transaction_id": result.transaction_id, "transaction_status": result.status}
