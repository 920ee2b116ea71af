"""
ascent.__main__ — Entry point for ``python -m ascent``
======================================================

Wiring:
1. Load .env (secrets, DATABASE_URL).
2. Load config.yaml (port, streak timezone, reward tables).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Serve the dashboard API with uvicorn (blocking).

Run with::

    python -m ascent
"""

from __future__ import annotations

import logging
import sys

import uvicorn
from dotenv import load_dotenv

from ascent.config import load_config
from ascent.database.engine import create_db_engine, init_db
from ascent.engine.catalog import CatalogError

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("ascent")


def main() -> None:
    """Bootstrap and run the Ascent API."""

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Configuration.  A bad reward table stops the process here.
    try:
        cfg = load_config()
    except (FileNotFoundError, CatalogError) as exc:
        logger.critical("%s", exc)
        sys.exit(1)
    logger.info("Config loaded — %s (streaks in %s)", cfg.app_name, cfg.streak_timezone)

    # 3. Database.
    engine = create_db_engine()
    init_db(engine)
    engine.dispose()

    # 4. API (blocks until Ctrl+C or SIGTERM).
    uvicorn.run("ascent.api.main:app", host="0.0.0.0", port=cfg.dashboard_port)


if __name__ == "__main__":
    main()
