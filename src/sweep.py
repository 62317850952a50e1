"""
Sweep Engine - discovery and deletion of orphaned load balancers.

Lists every load balancer in a region, classifies each one and deletes
those owned by test runs. Per-record failures are logged and do not stop
the batch; a listing failure is fatal because without a full inventory no
ownership decision is safe.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from client import RemoteCaller, SlbClient
from config import ReconcilerConfig, SweepConfig
from errors import DeleteFailedError, OperationCancelledError, SweepListingError
from ownership import OwnershipClassifier, SweepCandidate
from pagination import list_all_load_balancers
from reconciler import LoadBalancerReconciler

logger = logging.getLogger(__name__)

SweepFunc = Callable[[str], Awaitable[Any]]


@dataclass
class SweepResult:
    """Summary of one sweep over a region."""

    region: str
    scanned: int = 0
    deleted: List[str] = field(default_factory=list)
    # Owned but already deleted by the time the sweep reached them
    already_gone: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    dry_run: bool = False

    @property
    def success(self) -> bool:
        return not self.failed


class SweepEngine:
    """
    Sweeps orphaned load balancers from one region.

    Deletes run concurrently, bounded by ``max_concurrent_deletes``. Each
    delete switches delete protection off first and tolerates NotFound.
    """

    name = "slb"
    # When implemented, these sweepers must run first
    dependencies = ["cs_cluster"]

    def __init__(
        self,
        client: SlbClient,
        classifier: OwnershipClassifier,
        config: Optional[SweepConfig] = None,
        reconciler_config: Optional[ReconcilerConfig] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self.client = client
        self.classifier = classifier
        self.config = config or SweepConfig()
        self.reconciler_config = reconciler_config or ReconcilerConfig()
        self.cancel_event = cancel_event
        self.semaphore = asyncio.Semaphore(max(1, self.config.max_concurrent_deletes))

    async def sweep(self, region: str) -> SweepResult:
        """
        Sweep a region.

        Raises:
            SweepListingError: If the region could not be fully listed
        """
        caller = RemoteCaller(self.reconciler_config, self.cancel_event)
        try:
            records = await list_all_load_balancers(
                self.client, region, self.config.page_size, caller
            )
        except OperationCancelledError:
            raise
        except Exception as e:
            raise SweepListingError(region, e) from e

        result = SweepResult(
            region=region, scanned=len(records), dry_run=self.config.dry_run
        )
        logger.info(f"Found {len(records)} SLBs in region {region}")

        owned: List[SweepCandidate] = []
        for record in records:
            candidate = await self.classifier.classify(record)
            if candidate.owned:
                owned.append(candidate)
            else:
                logger.info(
                    f"Skipping SLB: {record.name} ({record.load_balancer_id}) "
                    f"[{candidate.reason.value}]"
                )
                result.skipped.append(record.load_balancer_id)

        if self.config.dry_run:
            for candidate in owned:
                logger.info(
                    f"[dry-run] Would delete SLB: {candidate.record.name} "
                    f"({candidate.record.load_balancer_id}) "
                    f"[{candidate.reason.value}]"
                )
            return result

        outcomes = await asyncio.gather(
            *(self._delete_candidate(candidate, result) for candidate in owned),
            return_exceptions=True,
        )
        for candidate, outcome in zip(owned, outcomes):
            if isinstance(outcome, Exception):
                record = candidate.record
                logger.error(
                    f"Unexpected error deleting SLB ({record.name} "
                    f"({record.load_balancer_id})): {outcome}",
                    exc_info=outcome,
                )
                result.failed[record.load_balancer_id] = str(outcome)

        logger.info(
            f"Sweep of {region} finished: {len(result.deleted)} deleted, "
            f"{len(result.already_gone)} already gone, "
            f"{len(result.skipped)} skipped, {len(result.failed)} failed"
        )
        return result

    async def _delete_candidate(
        self, candidate: SweepCandidate, result: SweepResult
    ) -> None:
        record = candidate.record
        async with self.semaphore:
            logger.info(
                f"Deleting SLB: {record.name} ({record.load_balancer_id}) "
                f"[{candidate.reason.value}]"
            )
            reconciler = LoadBalancerReconciler(
                self.client,
                self.reconciler_config,
                self.cancel_event,
                load_balancer_id=record.load_balancer_id,
            )
            try:
                deleted = await reconciler.delete(force=True)
            except (DeleteFailedError, OperationCancelledError) as e:
                logger.error(
                    f"Failed to delete SLB ({record.name} "
                    f"({record.load_balancer_id})): {e}"
                )
                result.failed[record.load_balancer_id] = str(e)
                return
            if deleted:
                result.deleted.append(record.load_balancer_id)
            else:
                result.already_gone.append(record.load_balancer_id)


@dataclass
class Sweeper:
    """A named sweep function and the sweepers that must run before it."""

    name: str
    func: SweepFunc
    dependencies: List[str] = field(default_factory=list)


class SweeperRegistry:
    """
    Registry of sweepers with a declared dependency ordering.

    The order is resolved once from the declared dependency table; it is
    never discovered from the remote side.
    """

    def __init__(self):
        self._sweepers: Dict[str, Sweeper] = {}

    def register(
        self, name: str, func: SweepFunc, dependencies: Optional[List[str]] = None
    ) -> None:
        """
        Register a sweeper.

        Args:
            name: Unique sweeper name
            func: Coroutine function taking the region
            dependencies: Names of sweepers that must run first
        """
        if name in self._sweepers:
            logger.warning(f"Overwriting existing sweeper: {name}")
        self._sweepers[name] = Sweeper(name, func, list(dependencies or []))
        logger.debug(f"Registered sweeper: {name}")

    def register_engine(self, engine: SweepEngine) -> None:
        """Register a SweepEngine under its declared name and dependencies."""
        self.register(engine.name, engine.sweep, engine.dependencies)

    def list_sweepers(self) -> List[str]:
        return list(self._sweepers.keys())

    def resolve_order(self, names: Optional[List[str]] = None) -> List[str]:
        """
        Resolve the execution order for the given sweepers.

        Registered dependencies are pulled in and placed before their
        dependents. Dependencies that are not registered are skipped with
        a warning.

        Raises:
            ValueError: On an unknown sweeper name or a dependency cycle
        """
        requested = names if names is not None else self.list_sweepers()
        for name in requested:
            if name not in self._sweepers:
                available = ", ".join(self._sweepers.keys()) or "none"
                raise ValueError(
                    f"Unknown sweeper: {name}. Available sweepers: {available}"
                )

        order: List[str] = []
        visiting: List[str] = []

        def visit(name: str) -> None:
            if name in order:
                return
            if name in visiting:
                cycle = " -> ".join(visiting[visiting.index(name):] + [name])
                raise ValueError(f"Sweeper dependency cycle: {cycle}")
            visiting.append(name)
            for dep in self._sweepers[name].dependencies:
                if dep not in self._sweepers:
                    logger.warning(
                        f"Sweeper '{name}' depends on unregistered sweeper "
                        f"'{dep}', skipping it"
                    )
                    continue
                visit(dep)
            visiting.pop()
            order.append(name)

        for name in requested:
            visit(name)
        return order

    async def run(
        self, region: str, names: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        """
        Run sweepers in dependency order.

        A failing sweeper is logged and recorded; the remaining sweepers
        still run.

        Returns:
            Mapping of sweeper name to its result, or the exception it raised.
        """
        results: Dict[str, Any] = {}
        for name in self.resolve_order(names):
            logger.info(f"Running sweeper {name} in region {region}")
            try:
                results[name] = await self._sweepers[name].func(region)
            except OperationCancelledError:
                raise
            except Exception as e:
                logger.error(f"Sweeper {name} failed in region {region}: {e}")
                results[name] = e
        return results
