from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import uvicorn

from app.api.main import create_app
from app.config import Config


def run() -> None:
    config = Config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
    )

    db_path = Path(config.db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    # A SchemaError here aborts startup.
    app = create_app(str(db_path))

    host = os.getenv("TAGGED_NOTES_HOST", "127.0.0.1")
    port = int(os.getenv("TAGGED_NOTES_PORT", "8765"))
    try:
        uvicorn.run(app, host=host, port=port, log_level="info")
    finally:
        app.state.repo.close()


if __name__ == "__main__":
    run()
