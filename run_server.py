import os

import uvicorn

from waterbender.config import settings
from utils.logging_utils import get_tagged_logger, setup_logging

logger = get_tagged_logger(__name__, tag="server")


if __name__ == "__main__":
    setup_logging(level=settings.log_level, job_name="waterbender")
    logger.info(
        "Starting waterbender dashboard API",
        extra={"data_source": settings.data_source, "api_base_url": settings.api_base_url},
    )

    uvicorn.run(
        "waterbender.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=False,
    )
