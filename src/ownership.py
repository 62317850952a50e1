"""
Ownership classification for orphaned load balancers.

Decides whether a load balancer found in a region belongs to this system's
test runs and is safe to delete. Ambiguity always resolves to Foreign.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from client import ClusterLookup, NetworkOwnershipOracle, RemoteCaller
from errors import NotFoundError, OperationCancelledError
from models import LoadBalancer

logger = logging.getLogger(__name__)


class Ownership(Enum):
    """Classification verdict."""

    OWNED = "owned"
    FOREIGN = "foreign"


class OwnershipReason(Enum):
    """Which rule produced the verdict."""

    NAME_PREFIX = "name_prefix"
    NETWORK = "network"
    ORPHANED_DEPENDENT = "orphaned_dependent"
    DEPENDENT_ALIVE = "dependent_alive"
    AMBIGUOUS = "ambiguous"
    NO_MATCH = "no_match"


@dataclass
class SweepCandidate:
    """A listed load balancer together with its ownership verdict."""

    record: LoadBalancer
    verdict: Ownership
    reason: OwnershipReason
    lineage_tag: Optional[str] = None

    @property
    def owned(self) -> bool:
        return self.verdict is Ownership.OWNED

    @property
    def vpc_id(self) -> str:
        return self.record.vpc_id

    @property
    def vswitch_id(self) -> str:
        return self.record.vswitch_id


class OwnershipClassifier:
    """
    Classifies load balancers; first matching rule wins.

    1. Name starts with a configured prefix (case-insensitive): Owned.
    2. The VPC / vSwitch is itself due for cleanup: Owned.
    3. A tag key carries the lineage prefix: Owned only when the owning
       cluster (looked up by the load balancer name) no longer exists.
       A failed lookup is ambiguous and yields Foreign.
    4. Otherwise Foreign.
    """

    def __init__(
        self,
        name_prefixes: List[str],
        network_oracle: Optional[NetworkOwnershipOracle] = None,
        cluster_lookup: Optional[ClusterLookup] = None,
        lineage_tag_prefix: str = "kubernetes",
        caller: Optional[RemoteCaller] = None,
    ):
        self.name_prefixes = [p.lower() for p in name_prefixes]
        self.network_oracle = network_oracle
        self.cluster_lookup = cluster_lookup
        self.lineage_tag_prefix = lineage_tag_prefix.lower()
        self.caller = caller or RemoteCaller()

    async def classify(self, record: LoadBalancer) -> SweepCandidate:
        """Return the sweep candidate for one load balancer."""
        if self._matches_prefix(record.name):
            return SweepCandidate(record, Ownership.OWNED, OwnershipReason.NAME_PREFIX)

        if await self._network_needs_sweep(record):
            return SweepCandidate(record, Ownership.OWNED, OwnershipReason.NETWORK)

        lineage_tag = self._lineage_tag(record)
        if lineage_tag is not None:
            verdict, reason = await self._classify_dependent(record)
            return SweepCandidate(record, verdict, reason, lineage_tag=lineage_tag)

        return SweepCandidate(record, Ownership.FOREIGN, OwnershipReason.NO_MATCH)

    def _matches_prefix(self, name: str) -> bool:
        lowered = name.lower()
        return any(lowered.startswith(prefix) for prefix in self.name_prefixes)

    def _lineage_tag(self, record: LoadBalancer) -> Optional[str]:
        for key in record.tags:
            if key.lower().startswith(self.lineage_tag_prefix):
                return key
        return None

    async def _network_needs_sweep(self, record: LoadBalancer) -> bool:
        if self.network_oracle is None:
            return False
        if not record.vpc_id and not record.vswitch_id:
            return False
        try:
            return await self.caller.call_once(
                "NeedsSweepNetwork",
                self.network_oracle.needs_sweep,
                record.vpc_id,
                record.vswitch_id,
            )
        except OperationCancelledError:
            raise
        except Exception as e:
            # Unknown network ownership falls through to the next rule
            logger.debug(
                f"Network lookup failed for SLB {record.load_balancer_id}: {e}"
            )
            return False

    async def _classify_dependent(self, record: LoadBalancer):
        if self.cluster_lookup is None:
            return Ownership.FOREIGN, OwnershipReason.AMBIGUOUS
        try:
            exists = await self.caller.call_once(
                "DescribeCluster", self.cluster_lookup.cluster_exists, record.name
            )
        except NotFoundError:
            exists = False
        except OperationCancelledError:
            raise
        except Exception as e:
            logger.warning(
                f"Ambiguous ownership for SLB {record.name} "
                f"({record.load_balancer_id}): cluster lookup failed: {e}; "
                f"not deleting"
            )
            return Ownership.FOREIGN, OwnershipReason.AMBIGUOUS

        if exists:
            return Ownership.FOREIGN, OwnershipReason.DEPENDENT_ALIVE
        return Ownership.OWNED, OwnershipReason.ORPHANED_DEPENDENT
