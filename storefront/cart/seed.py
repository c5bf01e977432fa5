"""
Panier de test pour le développement.
Actif uniquement si ENABLE_TEST_CART=true: un panier vide reçoit TEST_CART_PRODUCT_ID x1.
"""
import logging

from storefront import config
from storefront.cart.models import Cart, upsert_item

logger = logging.getLogger(__name__)

TEST_QUANTITY = 1


def seed_test_cart(store, cart: Cart) -> Cart:
    if not config.ENABLE_TEST_CART or cart.items:
        return cart
    seeded = upsert_item(cart.model_copy(deep=True), config.TEST_CART_PRODUCT_ID, TEST_QUANTITY)
    written = store.write(seeded)
    logger.info("[TEST MODE] seeded cart with test product %s", config.TEST_CART_PRODUCT_ID)
    return written
