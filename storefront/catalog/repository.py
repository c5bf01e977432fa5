"""
Accès au catalogue produits (CMS headless).
- Source de vérité des prix: toujours relus au moment du calcul, jamais depuis le front.
- Délai borné (CATALOG_TIMEOUT_SECONDS) puis une seule relance sans délai, pour absorber
  un démarrage à froid du CMS sans bloquer la requête indéfiniment.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import quote

import httpx

from storefront import config
from storefront.utils.errors import CatalogUnavailableError

logger = logging.getLogger(__name__)

_UNSAFE_ID_CHARS = ("/", "\\", "?", "#", "%")

# module storefront.catalog.repository
def _base_url() -> str:
    if not config.CMS_URL:
        raise CatalogUnavailableError("CMS_URL manquant")
    return config.CMS_URL

def _get(path: str, params: Optional[Sequence[Tuple[str, str]]] = None, client: Optional[httpx.Client] = None) -> httpx.Response:
    """
    GET sur le CMS avec délai borné et une relance.
    - 1er essai: timeout=CATALOG_TIMEOUT_SECONDS
    - En cas d'échec transport (timeout, connexion): 2e essai sans timeout
    - Échec du 2e essai: CatalogUnavailableError
    """
    url = f"{_base_url()}{path}"
    headers = {"Accept": "application/json"}
    http = client or httpx.Client()
    try:
        try:
            return http.get(url, params=params, headers=headers, timeout=config.CATALOG_TIMEOUT_SECONDS)
        except httpx.TransportError as e:
            logger.warning("catalog.get %s failed (%s), retrying once without timeout", path, type(e).__name__)
        try:
            return http.get(url, params=params, headers=headers, timeout=None)
        except httpx.TransportError as e:
            logger.exception("catalog.get %s retry failed", path)
            raise CatalogUnavailableError(f"Catalogue injoignable: {type(e).__name__}") from e
    finally:
        if client is None:
            http.close()

def fetch_products_by_ids(ids: Iterable[str], client: Optional[httpx.Client] = None) -> List[Dict[str, Any]]:
    """
    Récupère les produits par IDs (collection 'products').
    - Retourne [] si ids vide.
    - Soulève CatalogUnavailableError si la réponse est non-2xx ou illisible.
    """
    id_list = [str(i) for i in ids if str(i or "").strip()]
    if not id_list:
        return []
    params: List[Tuple[str, str]] = [("where[id][in]", pid) for pid in id_list]
    # Le CMS pagine par défaut: on demande explicitement autant de docs que d'IDs
    params.append(("limit", str(len(id_list))))
    params.append(("depth", "0"))

    res = _get("/api/products", params=params, client=client)
    if not res.is_success:
        raise CatalogUnavailableError("Lecture catalogue en échec", status_code=res.status_code, body=res.text)
    try:
        body = res.json()
    except ValueError as e:
        raise CatalogUnavailableError("Réponse catalogue illisible", status_code=res.status_code, body=res.text) from e
    if not isinstance(body, dict):
        raise CatalogUnavailableError("Réponse catalogue inattendue", status_code=res.status_code, body=res.text)
    docs = body.get("docs") or []
    if not isinstance(docs, list):
        raise CatalogUnavailableError("Réponse catalogue inattendue", status_code=res.status_code, body=res.text)
    return [d for d in docs if isinstance(d, dict)]

def get_products_map(ids: Iterable[str], client: Optional[httpx.Client] = None) -> Dict[str, Dict[str, Any]]:
    """
    Retourne un dict {id: produit} à partir d'une liste d'IDs.
    """
    products = fetch_products_by_ids(list(ids), client=client)
    return {str(p.get("id")): p for p in products}

def product_exists(product_id: str, client: Optional[httpx.Client] = None) -> bool:
    """
    Vérifie l'existence d'un produit (GET /api/products/<id>).
    - 2xx: True ; 404/4xx: False ; 5xx: CatalogUnavailableError (ne pas confondre panne et absence).
    - Id contenant un séparateur d'URL (/ ? # %) ou égal à "." / "..": False sans appel.
    """
    product_id = str(product_id or "").strip()
    if not product_id or product_id in (".", "..") or any(c in product_id for c in _UNSAFE_ID_CHARS):
        return False
    res = _get(f"/api/products/{quote(product_id, safe='')}", client=client)
    if res.status_code >= 500:
        raise CatalogUnavailableError("Lecture produit en échec", status_code=res.status_code, body=res.text)
    return res.is_success

def price_from_product(product: Dict[str, Any]) -> Decimal:
    """
    Prix unitaire d'un produit (Decimal).
    - Autorise product["price"] à être str|float|int.
    - Retourne Decimal("0") si parsing impossible.
    """
    try:
        price = Decimal(str(product.get("price") or 0))
    except (InvalidOperation, ValueError):
        return Decimal("0")
    return price if price.is_finite() else Decimal("0")
