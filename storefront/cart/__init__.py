"""
Module 'cart' (feature-first): point d'entrée public.
Réunit le modèle du panier, ses stores (cookie, Redis, mémoire) et les mutations.
"""

from .models import Cart, CartItem, upsert_item
from .store import CartStore, CookieCartStore, RedisCartStore, InMemoryCartStore, get_cart_store, server_side_store
from .service import add_to_cart, set_quantity, remove_from_cart, clear_cart, cart_count

__all__ = [
    # models
    "Cart",
    "CartItem",
    "upsert_item",
    # stores
    "CartStore",
    "CookieCartStore",
    "RedisCartStore",
    "InMemoryCartStore",
    "get_cart_store",
    "server_side_store",
    # services
    "add_to_cart",
    "set_quantity",
    "remove_from_cart",
    "clear_cart",
    "cart_count",
]
