import logging
import os
from typing import Any, Dict

import uvicorn

TRUTHY = {"1", "true", "yes", "on"}


def _tls_options() -> Dict[str, str]:
    pairs = {
        "ssl_certfile": os.getenv("SSL_CERTFILE"),
        "ssl_keyfile": os.getenv("SSL_KEYFILE"),
    }
    return {key: value for key, value in pairs.items() if value}


def server_options() -> Dict[str, Any]:
    reload_enabled = os.getenv("RELOAD", "false").lower() in TRUTHY
    options: Dict[str, Any] = {
        "host": os.getenv("HOST", "0.0.0.0"),
        "port": int(os.getenv("PORT", "8000")),
        "log_level": os.getenv("LOG_LEVEL", "info").lower(),
        "reload": reload_enabled,
        "proxy_headers": True,
        "forwarded_allow_ips": os.getenv("FORWARDED_ALLOW_IPS", "*"),
    }
    # uvicorn ignores workers when reload is on.
    if not reload_enabled:
        options["workers"] = int(os.getenv("WEB_CONCURRENCY", "1"))
    options.update(_tls_options())
    return options


def main() -> None:
    options = server_options()
    logging.basicConfig(level=options["log_level"].upper())
    uvicorn.run("compliancedb.main:app", **options)


if __name__ == "__main__":
    main()
