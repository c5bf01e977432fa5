"""
Lancement local de la vitrine: `python -m storefront` (ou le script `storefront`).
Variables lues: HOST, PORT, UVICORN_RELOAD ("1"/"true"/"yes"), LOG_LEVEL.
"""
import os
from typing import Any, Dict, Mapping, Optional

import uvicorn

_TRUTHY = ("1", "true", "yes")


def server_options(env: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    env = os.environ if env is None else env
    return {
        "host": env.get("HOST", "0.0.0.0"),
        "port": int(env.get("PORT", 8000)),
        # reload seulement sur demande explicite (dev local)
        "reload": env.get("UVICORN_RELOAD", "").lower() in _TRUTHY,
        "log_level": env.get("LOG_LEVEL", "info"),
    }


def main() -> None:
    uvicorn.run("storefront.asgi:app", **server_options())


if __name__ == "__main__":
    main()
