from typing import Optional
import redis
from storefront import config

_redis: Optional[redis.Redis] = None

def get_redis() -> redis.Redis:
    """
    Client Redis synchrone partagé (panier côté serveur, ledger des transactions).
    Le rate limiting utilise son propre client asynchrone (voir app_setup.lifespan).
    """
    global _redis
    if _redis is None:
        _redis = redis.from_url(config.REDIS_URL, encoding="utf-8", decode_responses=True)
    return _redis

def reset_redis() -> None:
    global _redis
    _redis = None
