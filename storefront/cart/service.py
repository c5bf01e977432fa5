"""
Cas d'usage 'cart': seules fonctions autorisées à modifier le contenu du panier.
Chaque mutation lit le panier depuis le store, applique le changement puis réécrit.
Invariant après chaque mutation: ids uniques, toutes les quantités > 0.
"""
import logging
from typing import Any, Callable, Dict, Optional

from storefront.catalog import repository as catalog_repo
from storefront.cart.models import Cart, upsert_item
from storefront.cart.store import CartStore
from storefront.utils.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

OnChange = Optional[Callable[[Cart], None]]

def _notify(on_change: OnChange, cart: Cart) -> None:
    # Hook d'invalidation de vue (badge panier...): best-effort
    if on_change is None:
        return
    try:
        on_change(cart)
    except Exception:
        logger.exception("cart.on_change hook failed")

def add_to_cart(store: CartStore, product_id: str, qty: int = 1, on_change: OnChange = None) -> Cart:
    """
    Ajoute qty unités d'un produit (incrémente la ligne existante ou l'insère).
    - NotFoundError si le produit n'existe pas au catalogue (panier inchangé).
    - ValidationError si qty < 1.
    """
    product_id = str(product_id or "").strip()
    if qty < 1:
        raise ValidationError("La quantité doit être positive")
    if not catalog_repo.product_exists(product_id):
        raise NotFoundError(f"Produit introuvable: {product_id}")
    cart = store.read()
    upsert_item(cart, product_id, qty)
    written = store.write(cart)
    _notify(on_change, written)
    return written

def set_quantity(store: CartStore, product_id: str, qty: int, on_change: OnChange = None) -> Cart:
    """
    Fixe la quantité exacte d'une ligne (bornée à >= 0; 0 retire la ligne).
    """
    qty = max(0, int(qty))
    cart = store.read()
    before = cart.quantity_of(product_id)
    upsert_item(cart, product_id, qty - before)
    written = store.write(cart)
    _notify(on_change, written)
    return written

def remove_from_cart(store: CartStore, product_id: str, on_change: OnChange = None) -> Cart:
    """Retire la ligne sans erreur si elle est absente."""
    cart = store.read()
    cart.items = [i for i in cart.items if i.id != product_id]
    written = store.write(cart)
    _notify(on_change, written)
    return written

def clear_cart(store: CartStore, on_change: OnChange = None) -> Cart:
    """Remplace le panier par un panier vide (la référence du panier est conservée)."""
    ref = store.read().ref
    written = store.write(Cart.empty(ref))
    _notify(on_change, written)
    return written

def cart_count(store: CartStore) -> Dict[str, Any]:
    """Nombre d'unités dans le panier, pour les badges du front."""
    cart = store.read()
    return {"count": sum(i.qty for i in cart.items), "updatedAt": cart.updated_at}
