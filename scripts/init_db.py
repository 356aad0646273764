# scripts/init_db.py
"""
Create the reconciliation tables.

    python -m scripts.init_db           # create missing tables
    python -m scripts.init_db --reset   # drop everything first
"""

import logging
import sys

from receivables.config import settings
from receivables.db.engine import get_engine
from receivables.db.schema import metadata

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
logger = logging.getLogger(__name__)


def main(reset: bool = False):
    engine = get_engine()
    if reset:
        metadata.drop_all(engine)
        logger.warning("Dropped all tables in %s", settings.database_url)
    metadata.create_all(engine)
    logger.info("Schema ready: %s", ", ".join(sorted(metadata.tables)))


if __name__ == "__main__":
    main(reset="--reset" in sys.argv[1:])
