"""
Ledger des transactions réconciliées, indexé par transaction_id.

- record(transaction_id, status): mémorise le statut terminal (premier statut reçu conservé).
- claim(transaction_id, effect): réserve atomiquement un effet ("notify", "clear:<ref panier>").
  Retourne True une seule fois par couple (transaction, effet): c'est ce qui rend la
  réconciliation sûre face aux redélivraisons et à l'entrelacement webhook / redirection.
"""
import logging
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Optional, Tuple

from storefront import config

logger = logging.getLogger(__name__)


class TransactionLedger(ABC):
    @abstractmethod
    def record(self, transaction_id: str, status: str) -> bool:
        ...

    @abstractmethod
    def status_of(self, transaction_id: str) -> Optional[str]:
        ...

    @abstractmethod
    def claim(self, transaction_id: str, effect: str) -> bool:
        ...


class InMemoryLedger(TransactionLedger):
    """
    Ledger local au processus, pour le développement et les tests (mono-worker).
    Borné à max_entries statuts et max_entries effets: les plus anciens sont évincés.
    """

    def __init__(self, max_entries: int = 10_000):
        self._lock = threading.Lock()
        self.max_entries = max_entries
        self._statuses: "OrderedDict[str, str]" = OrderedDict()
        self._claims: "OrderedDict[Tuple[str, str], None]" = OrderedDict()

    def _evict(self, entries: OrderedDict) -> None:
        while len(entries) > self.max_entries:
            entries.popitem(last=False)

    def record(self, transaction_id: str, status: str) -> bool:
        with self._lock:
            if transaction_id in self._statuses:
                return False
            self._statuses[transaction_id] = status
            self._evict(self._statuses)
            return True

    def status_of(self, transaction_id: str) -> Optional[str]:
        with self._lock:
            return self._statuses.get(transaction_id)

    def claim(self, transaction_id: str, effect: str) -> bool:
        with self._lock:
            key = (transaction_id, effect)
            if key in self._claims:
                return False
            self._claims[key] = None
            self._evict(self._claims)
            return True


class RedisLedger(TransactionLedger):
    """SET NX + TTL: atomique entre plusieurs workers."""

    def __init__(self, client, ttl_seconds: int = 60 * 60 * 24 * 30, prefix: str = "xpay:tx"):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    def record(self, transaction_id: str, status: str) -> bool:
        return bool(self.client.set(f"{self.prefix}:{transaction_id}:status", status, nx=True, ex=self.ttl_seconds))

    def status_of(self, transaction_id: str) -> Optional[str]:
        raw = self.client.get(f"{self.prefix}:{transaction_id}:status")
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return raw

    def claim(self, transaction_id: str, effect: str) -> bool:
        return bool(self.client.set(f"{self.prefix}:{transaction_id}:{effect}", "1", nx=True, ex=self.ttl_seconds))


_ledger: Optional[TransactionLedger] = None

def get_ledger() -> TransactionLedger:
    """
    Ledger partagé selon LEDGER_BACKEND ("memory" par défaut, "redis" en production multi-workers).
    """
    global _ledger
    if _ledger is None:
        if config.LEDGER_BACKEND == "redis":
            from storefront.infra.redis_client import get_redis
            _ledger = RedisLedger(get_redis(), ttl_seconds=60 * 60 * 24 * config.LEDGER_TTL_DAYS)
        else:
            if config.CART_STORE_BACKEND == "redis":
                logger.warning("LEDGER_BACKEND=memory with a redis cart store: claims are not shared between workers")
            _ledger = InMemoryLedger()
    return _ledger

def reset_ledger() -> None:
    global _ledger
    _ledger = None
