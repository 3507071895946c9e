from __future__ import annotations

import uvicorn

from tokenforge.env import load_dotenv_if_present


def main() -> None:
    # Load .env early so TOKENFORGE_* vars exist before anything reads them.
    load_dotenv_if_present()

    # Import after dotenv load (prevents "config read before env" surprises)
    from tokenforge.api.app import create_app
    from tokenforge.config import load_config

    cfg = load_config()
    uvicorn.run(create_app(cfg=cfg), host=cfg.api_host, port=int(cfg.api_port), log_level=cfg.log_level.lower())


if __name__ == "__main__":
    main()
