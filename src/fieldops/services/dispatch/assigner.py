"""Pair clusters with technicians, largest cluster to least-loaded technician."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Sequence

from ...errors import InsufficientTechnicians
from ...models.domain import Assignment, Cluster, Technician

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DispatchResult:
    assignments: List[Assignment]
    clustering_info: Dict[str, object]

    def technician_for_job(self) -> Dict[str, str]:
        return {job_id: assignment.tech_id for assignment in self.assignments for job_id in assignment.job_ids}


def _fits(technician: Technician, jobs: int) -> bool:
    return technician.capacity is None or technician.current_load + jobs <= technician.capacity


class DispatchAssigner:
    """Greedy one-technician-per-cluster pairing that balances total workload."""

    def assign(self, clusters: Sequence[Cluster], technicians: Sequence[Technician]) -> DispatchResult:
        if len(clusters) > len(technicians):
            raise InsufficientTechnicians(clusters=len(clusters), technicians=len(technicians))

        ordered_clusters = sorted(clusters, key=lambda c: (-len(c), c.cluster_id))
        available = sorted(technicians, key=lambda t: (t.current_load, t.tech_id))

        pairs: dict[str, Assignment] = {}
        for cluster in ordered_clusters:
            size = len(cluster)
            chosen = next((tech for tech in available if _fits(tech, size)), None)
            if chosen is None:
                raise InsufficientTechnicians(
                    clusters=len(clusters),
                    technicians=len(technicians),
                    reason=f"no remaining technician has capacity for cluster {cluster.cluster_id} ({size} jobs)",
                )
            available.remove(chosen)
            pairs[cluster.cluster_id] = Assignment(
                tech_id=chosen.tech_id,
                cluster_id=cluster.cluster_id,
                job_ids=list(cluster.job_ids),
            )

        # report in the clustering engine's order
        assignments = [pairs[cluster.cluster_id] for cluster in clusters]
        used = {assignment.tech_id for assignment in assignments}
        clustering_info: Dict[str, object] = {
            "totalClusters": len(used),
            "clusterSizes": {cluster.cluster_id: len(cluster) for cluster in clusters},
            "techniciansUsed": len(used),
            "techniciansAvailable": len(technicians),
            "assignments": {assignment.cluster_id: assignment.tech_id for assignment in assignments},
        }
        logger.info("Assigned %d clusters to %d of %d technicians", len(clusters), len(used), len(technicians))
        return DispatchResult(assignments=assignments, clustering_info=clustering_info)
