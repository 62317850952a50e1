"""
Load Balancer Reconciler - converges one declared load balancer with its
remote counterpart.

Similar to a Kubernetes controller's reconcile step: compare desired state
against actual state, issue the minimal set of remote mutations and re-read
until the remote side agrees.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from client import RemoteCaller, SlbClient
from config import ReconcilerConfig
from diff import Diff, compute_diff
from errors import (
    CreateFailedError,
    DeleteFailedError,
    ImmutableFieldChangedError,
    InvalidSpecError,
    NotFoundError,
    OperationCancelledError,
    RemoteCallError,
    UpdateFailedError,
)
from models import LoadBalancer, LoadBalancerSpec
from validation import validate_load_balancer_values

logger = logging.getLogger(__name__)


class ReconcileState(Enum):
    """Lifecycle state of the managed load balancer."""

    ABSENT = "absent"
    CREATING = "creating"
    PRESENT = "present"
    UPDATING = "updating"
    DELETING = "deleting"


@dataclass
class ReconcileResult:
    """Outcome of a successful create or update."""

    action: str = "noop"  # create, update or noop
    record: Optional[LoadBalancer] = None
    changed_fields: List[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return self.action != "noop"


class LoadBalancerReconciler:
    """
    CRUD state machine for one load balancer.

    ``Present`` is the only resting state. Creating, updating and deleting
    each finish within a bounded number of remote calls; transient errors
    are retried by the RemoteCaller, all others surface immediately. When
    the cancellation token fires between calls the reconciler raises
    OperationCancelledError and never reports success.
    """

    def __init__(
        self,
        client: SlbClient,
        config: Optional[ReconcilerConfig] = None,
        cancel_event: Optional[asyncio.Event] = None,
        load_balancer_id: Optional[str] = None,
    ):
        self.client = client
        self.config = config or ReconcilerConfig()
        self.caller = RemoteCaller(self.config, cancel_event)
        self.load_balancer_id = load_balancer_id
        self.state = (
            ReconcileState.PRESENT if load_balancer_id else ReconcileState.ABSENT
        )
        self.last_record: Optional[LoadBalancer] = None

    @staticmethod
    def _validate(spec: LoadBalancerSpec) -> None:
        is_valid, error = validate_load_balancer_values(spec.effective_values())
        if not is_valid:
            raise InvalidSpecError(error)

    # Read

    async def _describe(self) -> LoadBalancer:
        return await self.caller.call(
            "DescribeLoadBalancerAttribute",
            self.client.describe_load_balancer,
            self.load_balancer_id,
        )

    async def read(self) -> LoadBalancer:
        """
        Fetch the current record.

        Raises:
            NotFoundError: The remote side has no such load balancer; the
                reconciler drops back to Absent so the caller may recreate
        """
        if not self.load_balancer_id:
            raise NotFoundError("No load balancer has been created yet")
        try:
            record = await self._describe()
        except NotFoundError:
            logger.info(f"SLB {self.load_balancer_id} not found")
            self._mark_absent()
            raise
        self.last_record = record
        return record

    async def _confirm(self, spec: LoadBalancerSpec) -> Optional[LoadBalancer]:
        """
        Re-read until the record matches the declaration.

        Returns the matching record, or None if it never matched within
        confirm_attempts reads. A missing record counts as not yet visible.
        """
        for attempt in range(max(1, self.config.confirm_attempts)):
            if attempt:
                await asyncio.sleep(self.config.confirm_interval)
            try:
                record = await self._describe()
            except NotFoundError:
                continue
            self.last_record = record
            remaining = compute_diff(spec, record)
            if not remaining:
                return record
            logger.debug(
                f"SLB {self.load_balancer_id} not converged yet: "
                f"{', '.join(remaining.fields)}"
            )
        return None

    # Create

    async def create(self, spec: LoadBalancerSpec) -> ReconcileResult:
        """
        Create the load balancer and wait until a read confirms it.

        Raises:
            InvalidSpecError: Joint field constraints are violated
            CreateFailedError: The created record never matched the declaration
        """
        if self.state is not ReconcileState.ABSENT:
            raise RuntimeError(
                f"Cannot create: SLB {self.load_balancer_id} is {self.state.value}"
            )
        self._validate(spec)

        self.state = ReconcileState.CREATING
        try:
            self.load_balancer_id = await self.caller.call(
                "CreateLoadBalancer",
                self.client.create_load_balancer,
                spec.effective_values(),
            )
            logger.info(f"Creating SLB {self.load_balancer_id}")
            record = await self._confirm(spec)
        finally:
            # Once an id exists the remote resource must be tracked for cleanup
            self.state = (
                ReconcileState.PRESENT
                if self.load_balancer_id
                else ReconcileState.ABSENT
            )

        if record is None:
            raise CreateFailedError(
                f"SLB {self.load_balancer_id} did not reach the declared state "
                f"after {self.config.confirm_attempts} reads",
                load_balancer_id=self.load_balancer_id,
            )

        logger.info(f"SLB {self.load_balancer_id} created")
        return ReconcileResult(
            action="create",
            record=record,
            changed_fields=sorted(spec.effective_values()),
        )

    # Update

    async def plan(self, spec: LoadBalancerSpec) -> Diff:
        """
        Compute the diff against a fresh read and reject immutable changes.

        Raises:
            ImmutableFieldChangedError: Any immutable field would change
            NotFoundError: The load balancer no longer exists
        """
        self._validate(spec)
        record = await self.read()
        diff = compute_diff(spec, record)
        immutable = diff.immutable_changes()
        if immutable:
            raise ImmutableFieldChangedError(
                [(c.field, c.old, c.new) for c in immutable]
            )
        return diff

    async def update(self, spec: LoadBalancerSpec) -> ReconcileResult:
        """
        Send the changed mutable fields in one update call and confirm.

        Removed fields with a default are sent with that default. Tags are
        always sent as the full desired map.

        Raises:
            ImmutableFieldChangedError: No remote mutation is issued
            UpdateFailedError: The record never matched after the update
        """
        if self.state is not ReconcileState.PRESENT:
            raise RuntimeError(
                f"Cannot update: SLB {self.load_balancer_id} is {self.state.value}"
            )

        diff = await self.plan(spec)
        if not diff:
            logger.debug(f"SLB {self.load_balancer_id} already converged")
            return ReconcileResult(action="noop", record=self.last_record)

        fields = diff.update_fields()
        logger.info(
            f"Updating SLB {self.load_balancer_id}: {', '.join(sorted(fields))}"
        )
        self.state = ReconcileState.UPDATING
        try:
            await self.caller.call(
                "ModifyLoadBalancerAttributes",
                self.client.update_load_balancer,
                self.load_balancer_id,
                fields,
            )
            record = await self._confirm(spec)
        finally:
            self.state = ReconcileState.PRESENT

        if record is None:
            raise UpdateFailedError(
                f"SLB {self.load_balancer_id} did not converge on "
                f"{', '.join(sorted(fields))} after "
                f"{self.config.confirm_attempts} reads"
            )
        return ReconcileResult(
            action="update", record=record, changed_fields=sorted(fields)
        )

    async def apply(self, spec: LoadBalancerSpec) -> ReconcileResult:
        """Create when absent, update otherwise."""
        if self.state is ReconcileState.ABSENT:
            return await self.create(spec)
        return await self.update(spec)

    # Delete

    async def delete(self, force: bool = False) -> bool:
        """
        Delete the load balancer.

        Args:
            force: Switch delete protection off first (best effort)

        Returns:
            True if this call deleted it, False if it was already gone.

        Raises:
            DeleteFailedError: Any failure other than NotFound, including
                exhausted retries on transient errors
        """
        if not self.load_balancer_id:
            self._mark_absent()
            return False

        self.state = ReconcileState.DELETING
        try:
            if force:
                await self._disable_delete_protection()
            await self.caller.call(
                "DeleteLoadBalancer",
                self.client.delete_load_balancer,
                self.load_balancer_id,
            )
        except NotFoundError:
            logger.info(f"SLB {self.load_balancer_id} already deleted")
            self._mark_absent()
            return False
        except OperationCancelledError:
            self.state = ReconcileState.PRESENT
            raise
        except RemoteCallError as e:
            self.state = ReconcileState.PRESENT
            raise DeleteFailedError(self.load_balancer_id, e) from e

        logger.info(f"Deleted SLB {self.load_balancer_id}")
        self._mark_absent()
        return True

    async def _disable_delete_protection(self) -> None:
        try:
            await self.caller.call(
                "SetDeleteProtection",
                self.client.update_load_balancer,
                self.load_balancer_id,
                {"delete_protection": "off"},
            )
        except NotFoundError:
            raise
        except RemoteCallError as e:
            logger.warning(
                f"Could not disable delete protection on SLB "
                f"{self.load_balancer_id}: {e}"
            )

    def _mark_absent(self) -> None:
        self.state = ReconcileState.ABSENT
        self.last_record = None

    async def wait_until_gone(self) -> bool:
        """
        Poll until a read reports NotFound.

        Returns:
            True once the load balancer is unreadable, False if it was still
            readable after confirm_attempts reads.
        """
        if not self.load_balancer_id:
            return True
        for attempt in range(max(1, self.config.confirm_attempts)):
            if attempt:
                await asyncio.sleep(self.config.confirm_interval)
            try:
                await self._describe()
            except NotFoundError:
                return True
        return False
