"""Interfaces for the remote services the enrichment adapters call."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol, Union

from fleetwatch.domain import ChecklistStats, DefectCounts

# Collaborators may be plain functions (run in a worker thread) or coroutine functions.
DefectCountLookup = Callable[[str], Union[DefectCounts, Awaitable[DefectCounts]]]
ChecklistStatsLookup = Callable[[str], Union[ChecklistStats, Awaitable[ChecklistStats]]]
PortDocCountLookup = Callable[[str], Union[int, Awaitable[int]]]


class FleetDataSource(Protocol):
    """Anything that can answer the three per-vessel enrichment questions."""

    def get_defect_count_for_vessel(self, vessel_name: str) -> DefectCounts:
        """Return open defect counts for a vessel, by criticality."""
        ...

    def get_checklist_stats_for_vessel(self, vessel_id: str) -> ChecklistStats:
        """Return the aggregate checklist status and progress for a vessel."""
        ...

    def get_port_document_count(self, port_name: str) -> int:
        """Return the number of port documents on file for a port."""
        ...


@dataclass
class CallableFleetDataSource(FleetDataSource):
    """Wrap three callables so they can be swapped for different backends or fakes."""

    defect_count: DefectCountLookup
    checklist_stats: ChecklistStatsLookup
    port_doc_count: PortDocCountLookup

    def get_defect_count_for_vessel(self, vessel_name: str):
        """Delegate to the configured defect-count callable."""
        return self.defect_count(vessel_name)

    def get_checklist_stats_for_vessel(self, vessel_id: str):
        """Delegate to the configured checklist callable."""
        return self.checklist_stats(vessel_id)

    def get_port_document_count(self, port_name: str):
        """Delegate to the configured port-document callable."""
        return self.port_doc_count(port_name)
