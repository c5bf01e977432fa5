import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from storefront.cart import service as cart_service
from storefront.cart.store import CartStore, get_cart_store

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/cart", tags=["Cart API"])


class AddItemBody(BaseModel):
    product_id: str = Field(min_length=1)
    qty: int = 1


class SetQuantityBody(BaseModel):
    qty: int


# module storefront.cart.views
@router.get("")
def get_cart(store: CartStore = Depends(get_cart_store)) -> Dict[str, Any]:
    """Panier courant du visiteur: {"items": [{id, qty}], "updatedAt": <ms>}."""
    return store.read().to_public()

@router.get("/count")
def get_cart_count(store: CartStore = Depends(get_cart_store)) -> Dict[str, Any]:
    return cart_service.cart_count(store)

@router.post("/items")
def add_item(body: AddItemBody, store: CartStore = Depends(get_cart_store)) -> Dict[str, Any]:
    """
    Ajoute un produit au panier.
    - 404 si le produit n'existe pas au catalogue (panier inchangé)
    - 400 si qty < 1
    - 502 si le catalogue est injoignable
    """
    return cart_service.add_to_cart(store, body.product_id, body.qty).to_public()

@router.put("/items/{product_id}")
def set_item_quantity(product_id: str, body: SetQuantityBody, store: CartStore = Depends(get_cart_store)) -> Dict[str, Any]:
    """Fixe la quantité exacte; 0 (ou négatif) retire la ligne."""
    return cart_service.set_quantity(store, product_id, body.qty).to_public()

@router.delete("/items/{product_id}")
def remove_item(product_id: str, store: CartStore = Depends(get_cart_store)) -> Dict[str, Any]:
    return cart_service.remove_from_cart(store, product_id).to_public()

@router.delete("")
def clear(store: CartStore = Depends(get_cart_store)) -> Dict[str, Any]:
    return cart_service.clear_cart(store).to_public()
