"""
Remote Client Base - Abstract interfaces for the load balancer control plane.

The reconciler, sweep engine and harness depend only on these interfaces.
RemoteCaller wraps every call with a timeout, a cancellation check and a
bounded retry policy for transient errors.
"""

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from config import ReconcilerConfig
from errors import OperationCancelledError, RetryExhaustedError, TransientError
from models import LoadBalancer

logger = logging.getLogger(__name__)


@dataclass
class LoadBalancerPage:
    """One page of a list call."""

    records: List[LoadBalancer] = field(default_factory=list)
    total_count: Optional[int] = None  # None when the API does not report it


class SlbClient(ABC):
    """
    Abstract base class for a load balancer control plane client.

    Implementations raise the errors in the ``errors`` module:
    NotFoundError, TransientError, PermissionDeniedError and
    RemoteValidationError.
    """

    @abstractmethod
    async def list_load_balancers(
        self, region: str, page_size: int, page_number: int
    ) -> LoadBalancerPage:
        """
        List one page of load balancers in a region.

        Args:
            region: Region to list
            page_size: Number of records per page
            page_number: 1-based page number

        Returns:
            LoadBalancerPage with the records of that page.
        """
        pass

    @abstractmethod
    async def describe_load_balancer(self, load_balancer_id: str) -> LoadBalancer:
        """Fetch one load balancer by id."""
        pass

    @abstractmethod
    async def create_load_balancer(self, params: Dict[str, Any]) -> str:
        """
        Create a load balancer.

        Args:
            params: Declared field values (spec field names)

        Returns:
            The remote-assigned load balancer id.
        """
        pass

    @abstractmethod
    async def update_load_balancer(
        self, load_balancer_id: str, fields: Dict[str, Any]
    ) -> None:
        """
        Update mutable fields in one call.

        ``tags`` always carries the complete desired tag map.
        """
        pass

    @abstractmethod
    async def delete_load_balancer(self, load_balancer_id: str) -> None:
        """Delete a load balancer."""
        pass


class ClusterLookup(ABC):
    """Looks up the higher-level cluster that may own a load balancer."""

    @abstractmethod
    async def cluster_exists(self, name: str) -> bool:
        """
        Check whether a cluster with the given name exists.

        Returns False (or raises NotFoundError) when it does not exist.
        Any other error means the answer is unknown.
        """
        pass


class NetworkOwnershipOracle(ABC):
    """Decides whether a VPC / vSwitch pair is itself due for cleanup."""

    @abstractmethod
    async def needs_sweep(self, vpc_id: str, vswitch_id: str) -> bool:
        """Return True when the network construct should be swept."""
        pass


class RemoteCaller:
    """
    Executes remote calls under the caller's timeout, cancellation and
    retry policy.

    Only TransientError (including timeouts) is retried. Everything else
    propagates unchanged on the first failure.
    """

    def __init__(
        self,
        config: Optional[ReconcilerConfig] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self.config = config or ReconcilerConfig()
        self.cancel_event = cancel_event

    def check_cancelled(self, operation: str) -> None:
        """Raise OperationCancelledError if the cancellation token is set."""
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise OperationCancelledError(f"{operation} cancelled before remote call")

    def backoff_delay(self, attempt: int) -> float:
        """
        Delay before retry number ``attempt`` (0-based).

        Exponential backoff capped at backoff_max_delay, with ±jitter.
        """
        delay = min(
            self.config.backoff_base_delay * (2 ** min(attempt, 10)),
            self.config.backoff_max_delay,
        )
        jitter = self.config.backoff_jitter_factor
        return max(0.0, delay * (1 + random.uniform(-jitter, jitter)))

    async def call_once(
        self, operation: str, fn: Callable[..., Awaitable[Any]], *args: Any
    ) -> Any:
        """Run one remote call with the per-call timeout."""
        self.check_cancelled(operation)
        try:
            return await asyncio.wait_for(fn(*args), timeout=self.config.call_timeout)
        except asyncio.TimeoutError:
            raise TransientError(
                f"{operation} timed out after {self.config.call_timeout}s",
                code="Timeout",
            )

    async def call(
        self, operation: str, fn: Callable[..., Awaitable[Any]], *args: Any
    ) -> Any:
        """
        Run a remote call, retrying transient failures.

        Raises:
            RetryExhaustedError: If every attempt failed transiently
            OperationCancelledError: If the cancellation token is set
            RemoteCallError: Any non-transient failure, unchanged
        """
        attempts = max(1, self.config.max_attempts)
        for attempt in range(attempts):
            try:
                return await self.call_once(operation, fn, *args)
            except TransientError as e:
                if attempt + 1 >= attempts:
                    raise RetryExhaustedError(operation, attempts, e) from e
                delay = self.backoff_delay(attempt)
                logger.warning(
                    f"{operation} failed transiently (attempt {attempt + 1}/"
                    f"{attempts}): {e}; retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
