"""
Modèles du panier (pydantic).
Le panier est sérialisé tel quel dans le cookie / Redis: {"items": [...], "updatedAt": <ms>, "ref": "<hex>"}.
"""
import time
from typing import Any, Dict, List
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def now_ms() -> int:
    return int(time.time() * 1000)


def new_ref() -> str:
    return uuid4().hex


class CartItem(BaseModel):
    id: str = Field(min_length=1)
    qty: int = Field(gt=0)


class Cart(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    items: List[CartItem] = Field(default_factory=list)
    updated_at: int = Field(default_factory=now_ms, alias="updatedAt")
    ref: str = Field(default_factory=new_ref)

    @classmethod
    def empty(cls, ref: str | None = None) -> "Cart":
        return cls(items=[], updated_at=now_ms(), ref=ref or new_ref())

    def quantity_of(self, product_id: str) -> int:
        return next((i.qty for i in self.items if i.id == product_id), 0)

    def to_public(self) -> Dict[str, Any]:
        """Forme JSON exposée au front (sans la référence interne)."""
        return {
            "items": [{"id": i.id, "qty": i.qty} for i in self.items],
            "updatedAt": self.updated_at,
        }


def normalize_items(raw_items: List[Any]) -> List[CartItem]:
    """
    Normalise une liste brute [{id, qty}, ...] en lignes valides.
    - Ignore les lignes invalides (id vide, qty non entière ou <= 0).
    - Fusionne les doublons en additionnant les quantités (ordre de première apparition conservé).
    """
    quantities: Dict[str, int] = {}
    for it in raw_items:
        if not isinstance(it, dict):
            continue
        product_id = str(it.get("id") or "").strip()
        try:
            qty = int(it.get("qty") or 0)
        except (TypeError, ValueError, OverflowError):
            continue
        if not product_id or qty <= 0:
            continue
        quantities[product_id] = quantities.get(product_id, 0) + qty
    return [CartItem(id=pid, qty=qty) for pid, qty in quantities.items()]


def upsert_item(cart: Cart, product_id: str, delta: int) -> Cart:
    """
    Applique un delta de quantité sur une ligne (mutation en place).
    - Ligne existante: qty = max(0, qty + delta)
    - Ligne absente: insérée seulement si delta > 0
    - Les lignes à 0 sont retirées
    """
    quantities = [(i.id, i.qty) for i in cart.items]
    found = False
    updated = []
    for pid, qty in quantities:
        if pid == product_id:
            found = True
            qty = max(0, qty + delta)
        updated.append((pid, qty))
    if not found and delta > 0:
        updated.append((product_id, delta))
    cart.items = [CartItem(id=pid, qty=qty) for pid, qty in updated if qty > 0]
    return cart
