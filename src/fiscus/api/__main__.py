# src/fiscus/api/__main__.py
from __future__ import annotations

import os

import uvicorn

from fiscus.env import load_dotenv_if_present
from fiscus.runtime.chain_config import apply_chain_config_to_env, load_chain_config


def main() -> None:
    # FISCUS_* vars must exist before anything reads them.
    load_dotenv_if_present()

    cfg = load_chain_config()
    if os.environ.get("FISCUS_CHAIN_CONFIG_PATH"):
        # A chain config file is authoritative for the node it launches.
        apply_chain_config_to_env(cfg)

    from fiscus.api.app import create_app

    host = os.getenv("FISCUS_API_HOST") or cfg.api_host
    port = int(os.getenv("FISCUS_API_PORT") or cfg.api_port)

    uvicorn.run(create_app(), host=host, port=port, log_level=cfg.log_level.lower())


if __name__ == "__main__":
    main()
