"""
Stockage du panier visiteur.

Contrat commun (CartStore):
- read(): panier courant, ou panier vide si absent/corrompu (JSON invalide, items non-liste,
  signature invalide). La corruption est journalisée, jamais propagée.
- write(cart): persiste le panier en horodatant updatedAt à "maintenant" (l'horodatage de
  l'appelant est ignoré) et retourne la version écrite.

Backends:
- CookieCartStore: cookie signé httpOnly (itsdangerous), comportement par défaut.
- RedisCartStore: panier côté serveur, clé "cart:<ref>", ref transportée par un cookie signé.
- InMemoryCartStore: tests et scripts.
"""
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from fastapi import Request, Response
from itsdangerous import BadSignature, URLSafeTimedSerializer

from storefront import config
from storefront.cart.models import Cart, new_ref, normalize_items, now_ms

logger = logging.getLogger(__name__)

MAX_AGE_SECONDS = 60 * 60 * 24 * config.CART_MAX_AGE_DAYS


class CartStore(ABC):
    def __init__(self, clock: Callable[[], int] = now_ms):
        self._clock = clock

    @abstractmethod
    def _load(self) -> Optional[str]:
        ...

    @abstractmethod
    def _save(self, raw: str) -> None:
        ...

    def default_ref(self) -> Optional[str]:
        return None

    def bind(self, response: Response) -> "CartStore":
        return self

    def read(self) -> Cart:
        raw = self._load()
        cart = self._parse(raw) if raw else Cart.empty(self.default_ref())
        # Import local: seed écrit via ce même store
        from storefront.cart.seed import seed_test_cart
        return seed_test_cart(self, cart)

    def write(self, cart: Cart) -> Cart:
        stamped = cart.model_copy(update={"updated_at": self._clock()})
        self._save(json.dumps(stamped.model_dump(by_alias=True)))
        return stamped

    def _parse(self, raw: str) -> Cart:
        try:
            data: Dict[str, Any] = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("cart.store malformed json, resetting cart")
            return Cart.empty(self.default_ref())
        if not isinstance(data, dict) or not isinstance(data.get("items"), list):
            logger.warning("cart.store malformed payload (items is not a list), resetting cart")
            return Cart.empty(self.default_ref())

        updated_at = data.get("updatedAt")
        ref = data.get("ref")
        return Cart(
            items=normalize_items(data["items"]),
            updated_at=updated_at if isinstance(updated_at, int) else self._clock(),
            ref=self.default_ref() or (ref if isinstance(ref, str) and ref else new_ref()),
        )


class InMemoryCartStore(CartStore):
    def __init__(self, raw: Optional[str] = None, clock: Callable[[], int] = now_ms):
        super().__init__(clock)
        self.raw = raw

    def _load(self) -> Optional[str]:
        return self.raw

    def _save(self, raw: str) -> None:
        self.raw = raw


def _serializer(salt: str) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(config.CART_COOKIE_SECRET, salt=salt)


def _set_cookie(response: Response, key: str, value: str) -> None:
    response.set_cookie(
        key=key,
        value=value,
        httponly=True,
        secure=config.COOKIE_SECURE,
        samesite="lax",
        max_age=MAX_AGE_SECONDS,
        path="/",
    )


class CookieCartStore(CartStore):
    """
    Panier dans un cookie signé.
    - Les écritures de la requête courante sont visibles par les lectures suivantes (_pending).
    - bind(response) permet de cibler une réponse construite plus tard (ex: RedirectResponse).
    """

    def __init__(self, request: Request, response: Optional[Response] = None, clock: Callable[[], int] = now_ms):
        super().__init__(clock)
        self.request = request
        self.response = response
        self._pending: Optional[str] = None

    def bind(self, response: Response) -> "CookieCartStore":
        self.response = response
        if self._pending is not None:
            _set_cookie(response, config.CART_COOKIE_NAME, _serializer("cart").dumps(self._pending))
        return self

    def _load(self) -> Optional[str]:
        if self._pending is not None:
            return self._pending
        signed = self.request.cookies.get(config.CART_COOKIE_NAME)
        if not signed:
            return None
        try:
            return _serializer("cart").loads(signed, max_age=MAX_AGE_SECONDS)
        except BadSignature:
            logger.warning("cart.store invalid cookie signature, resetting cart")
            return None

    def _save(self, raw: str) -> None:
        self._pending = raw
        if self.response is not None:
            _set_cookie(self.response, config.CART_COOKIE_NAME, _serializer("cart").dumps(raw))


class RedisCartStore(CartStore):
    """Panier côté serveur: atteignable par le webhook via la ref du panier."""

    def __init__(self, client, ref: str, clock: Callable[[], int] = now_ms):
        super().__init__(clock)
        self.client = client
        self.ref = ref

    @property
    def key(self) -> str:
        return f"cart:{self.ref}"

    def default_ref(self) -> Optional[str]:
        return self.ref

    def _load(self) -> Optional[str]:
        raw = self.client.get(self.key)
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return raw

    def _save(self, raw: str) -> None:
        self.client.set(self.key, raw, ex=MAX_AGE_SECONDS)

    @classmethod
    def from_request(cls, client, request: Request, response: Optional[Response] = None) -> "RedisCartStore":
        ref = None
        signed = request.cookies.get(config.CART_REF_COOKIE_NAME)
        if signed:
            try:
                ref = _serializer("cart-ref").loads(signed, max_age=MAX_AGE_SECONDS)
            except BadSignature:
                logger.warning("cart.store invalid cart_ref signature, issuing a new ref")
        if not ref:
            ref = new_ref()
        # Prolonge le cookie à chaque requête (fenêtre glissante de 30 jours)
        if response is not None:
            _set_cookie(response, config.CART_REF_COOKIE_NAME, _serializer("cart-ref").dumps(ref))
        return cls(client, ref)

    def bind(self, response: Response) -> "RedisCartStore":
        _set_cookie(response, config.CART_REF_COOKIE_NAME, _serializer("cart-ref").dumps(self.ref))
        return self


def get_cart_store(request: Request, response: Response) -> CartStore:
    """
    Dépendance FastAPI: fournit le store du visiteur selon CART_STORE_BACKEND.
    """
    if config.CART_STORE_BACKEND == "redis":
        from storefront.infra.redis_client import get_redis
        return RedisCartStore.from_request(get_redis(), request, response)
    return CookieCartStore(request, response)


def server_side_store(cart_ref: Optional[str]) -> Optional[CartStore]:
    """
    Store atteignable hors navigateur (webhook passerelle).
    - Retourne None pour le backend cookie: seul le navigateur de l'acheteur détient le panier.
    """
    if not cart_ref or config.CART_STORE_BACKEND != "redis":
        return None
    from storefront.infra.redis_client import get_redis
    return RedisCartStore(get_redis(), cart_ref)
