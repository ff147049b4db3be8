import os

import uvicorn

from fleetwatch.config import settings
from utils.logging_utils import get_tagged_logger, mask_url, setup_logging

logger = get_tagged_logger(__name__, tag="server")


if __name__ == "__main__":
    setup_logging(level=settings.log_level)
    logger.info(f"Enrichment upstream: {mask_url(settings.api_base_url)}")

    uvicorn.run(
        "fleetwatch.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=False,
    )
