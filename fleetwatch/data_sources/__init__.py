"""Remote collaborators consumed by the enrichment adapters."""

from .base import CallableFleetDataSource, FleetDataSource
from .factory import build_data_source
from .fleet_api_client import (
    FleetApiClient,
    match_port,
    port_name_similarity,
    summarize_checklists,
    summarize_defects,
)

__all__ = [
    "build_data_source",
    "CallableFleetDataSource",
    "FleetDataSource",
    "FleetApiClient",
    "match_port",
    "port_name_similarity",
    "summarize_checklists",
    "summarize_defects",
]
