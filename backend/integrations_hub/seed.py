"""
Load the stock provider catalog: python -m integrations_hub.seed
"""
import logging

from integrations_hub.core.config import settings
from integrations_hub.core.database import SessionLocal
from integrations_hub.core.logging import setup_logging
from integrations_hub.services.provider_registry import seed_providers

logger = logging.getLogger(__name__)


def main() -> int:
    setup_logging(level=settings.LOG_LEVEL, json_logs=settings.JSON_LOGS)
    db = SessionLocal()
    try:
        created = seed_providers(db)
        logger.info(f"Provider catalog ready ({created} new)")
        return created
    finally:
        db.close()


if __name__ == "__main__":
    main()
