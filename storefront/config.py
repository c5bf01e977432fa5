# storefront.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=False)

"""
Configuration centrale de la vitrine.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (XPay, CMS, Resend, Redis)
- Paramètres du panier (cookie signé ou Redis) et du ledger de transactions
- Fournit les chemins de redirection utilisés après paiement
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _flag(name: str, default: str = "false") -> bool:
    return _clean_env(os.getenv(name, default)).lower() in ("1", "true", "yes")

# XPay: clé API, communauté et montant variable
# - XPAY_ENV=production bascule sur l'URL de production, tout le reste est identique
XPAY_API_KEY = _clean_env(os.getenv("XPAY_API_KEY") or "")
XPAY_COMMUNITY_ID = _clean_env(os.getenv("XPAY_COMMUNITY_ID") or "")
XPAY_VARIABLE_AMOUNT_ID = int(_clean_env(os.getenv("XPAY_VARIABLE_AMOUNT_ID") or "0") or 0)
XPAY_ENV = _clean_env(os.getenv("XPAY_ENV") or "staging").lower()
XPAY_PRODUCTION_URL = "https://community.xpay.app/api/v1"
XPAY_STAGING_URL = "https://staging.xpay.app/api/v1"
XPAY_TIMEOUT_SECONDS = float(os.getenv("XPAY_TIMEOUT_SECONDS", "15"))

DEFAULT_CURRENCY = _clean_env(os.getenv("DEFAULT_CURRENCY") or "EGP")
DEFAULT_PAYMENT_METHOD = "card"

# CMS headless (catalogue produits)
# - CMS_URL peut parfois être sans schéma: on préfixe en https:// si nécessaire
CMS_URL = _clean_env(os.getenv("CMS_URL") or os.getenv("NEXT_PUBLIC_CMS_URL") or "")
if CMS_URL and not CMS_URL.startswith("http"):
    CMS_URL = "https://" + CMS_URL
CMS_URL = CMS_URL.rstrip("/")
CATALOG_TIMEOUT_SECONDS = float(os.getenv("CATALOG_TIMEOUT_SECONDS", "8"))

# Panier: "cookie" (signé, côté client) ou "redis" (côté serveur, clé via cookie cart_ref)
CART_STORE_BACKEND = _clean_env(os.getenv("CART_STORE_BACKEND") or "cookie").lower()
CART_COOKIE_NAME = os.getenv("CART_COOKIE_NAME", "cart")
CART_REF_COOKIE_NAME = os.getenv("CART_REF_COOKIE_NAME", "cart_ref")
CART_COOKIE_SECRET = _clean_env(os.getenv("CART_COOKIE_SECRET") or "replace_me_with_a_long_random_secret")
CART_MAX_AGE_DAYS = int(os.getenv("CART_MAX_AGE_DAYS", "30"))
COOKIE_SECURE = _flag("COOKIE_SECURE")

# Panier de test (dev uniquement)
ENABLE_TEST_CART = _flag("ENABLE_TEST_CART")
TEST_CART_PRODUCT_ID = _clean_env(os.getenv("TEST_CART_PRODUCT_ID") or "test-product-1")

# Ledger des transactions réconciliées: "memory" ou "redis"
LEDGER_BACKEND = _clean_env(os.getenv("LEDGER_BACKEND") or "memory").lower()
LEDGER_TTL_DAYS = int(os.getenv("LEDGER_TTL_DAYS", "30"))
REDIS_URL = _clean_env(os.getenv("REDIS_URL") or "redis://127.0.0.1:6379/0")

# Notifications (Resend)
RESEND_API_KEY = _clean_env(os.getenv("RESEND_API_KEY") or "")
RESEND_API_URL = "https://api.resend.com/emails"
MAIL_FROM = _clean_env(os.getenv("MAIL_FROM") or "Boutique <orders@example.com>")
ADMIN_NOTIFY_EMAIL = _clean_env(os.getenv("ADMIN_NOTIFY_EMAIL") or "")

# CORS (dev)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

# Pages de confirmation / panier (rendues par le front)
CHECKOUT_SUCCESS_PATH = os.getenv("CHECKOUT_SUCCESS_PATH", "/checkout/success")
CART_PATH = os.getenv("CART_PATH", "/cart")
