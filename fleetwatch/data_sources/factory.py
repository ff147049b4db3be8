"""Factory helpers for choosing the fleet data source at startup."""

from __future__ import annotations

from fleetwatch import config
from fleetwatch.data_sources.base import FleetDataSource
from fleetwatch.data_sources.fleet_api_client import FleetApiClient
from utils.logging_utils import get_tagged_logger, mask_url

logger = get_tagged_logger(__name__)


DEFAULT_SOURCE_NAME = "http"


def build_data_source(settings: config.Settings | None = None) -> FleetDataSource:
    """Instantiate the configured fleet data source."""
    settings = settings or config.settings
    source = (settings.data_source or DEFAULT_SOURCE_NAME).lower()

    if source == "http":
        base_url = settings.api_base_url
        if not base_url:
            raise ValueError("api_base_url must be set for the http data source")
        logger.info("Using fleet HTTP data source", extra={"base_url": mask_url(base_url)})
        return FleetApiClient(
            base_url,
            timeout=settings.request_timeout_seconds,
            retries=settings.request_retries,
        )

    raise ValueError(f"Unknown fleet data source '{source}'")
