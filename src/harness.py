"""
Verification Harness - scripted declared-state mutations with attribute checks.

Runs an ordered list of steps against live load balancers. Each step merges
a declaration delta into the running declaration, reconciles, reads the
live record back and compares its flattened attributes against an expected
map. Teardown always deletes what the scenario created and checks that the
load balancers become unreadable.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from client import SlbClient
from config import ReconcilerConfig
from errors import SlbError
from models import LoadBalancer, LoadBalancerSpec
from reconciler import LoadBalancerReconciler

logger = logging.getLogger(__name__)


class ExpectKind(Enum):
    """Kinds of expected attribute values."""

    LITERAL = "literal"
    ANY_NON_EMPTY = "any_non_empty"
    ABSENT = "absent"


def format_value(value: Any) -> str:
    """Canonical string form used for attribute comparison."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass(frozen=True)
class ExpectedValue:
    """Expected attribute value: a literal, ANY_NON_EMPTY or ABSENT."""

    kind: ExpectKind
    value: Optional[str] = None

    @classmethod
    def literal(cls, value: Any) -> "ExpectedValue":
        return cls(ExpectKind.LITERAL, format_value(value))

    def matches(self, actual: Optional[str]) -> bool:
        present = actual is not None and actual != ""
        if self.kind is ExpectKind.ANY_NON_EMPTY:
            return present
        if self.kind is ExpectKind.ABSENT:
            return not present
        return actual == self.value

    def describe(self) -> str:
        if self.kind is ExpectKind.ANY_NON_EMPTY:
            return "<any non-empty>"
        if self.kind is ExpectKind.ABSENT:
            return "<absent>"
        return repr(self.value)


ANY_NON_EMPTY = ExpectedValue(ExpectKind.ANY_NON_EMPTY)
ABSENT = ExpectedValue(ExpectKind.ABSENT)


def as_expected(value: Any) -> ExpectedValue:
    """Wrap plain values as literals; ExpectedValue passes through."""
    if isinstance(value, ExpectedValue):
        return value
    return ExpectedValue.literal(value)


@dataclass
class Mismatch:
    """One attribute that did not match its expectation."""

    path: str
    expected: str
    actual: Optional[str]
    step: int = 0
    resource: str = ""

    def __str__(self) -> str:
        actual = "<absent>" if self.actual in (None, "") else repr(self.actual)
        where = f"{self.resource}: " if self.resource else ""
        return (
            f"step {self.step}: {where}{self.path}: "
            f"expected {self.expected}, got {actual}"
        )


def check_attributes(
    expected: Dict[str, Any], attributes: Dict[str, str]
) -> List[Mismatch]:
    """
    Compare a live attribute map with an expected map.

    Every mismatching path is reported, not just the first.
    """
    mismatches = []
    for path, raw in expected.items():
        expectation = as_expected(raw)
        actual = attributes.get(path)
        if not expectation.matches(actual):
            mismatches.append(
                Mismatch(path=path, expected=expectation.describe(), actual=actual)
            )
    return mismatches


@dataclass
class StepSpec:
    """
    One harness step.

    Attributes:
        config: Declaration delta; REMOVED fields are dropped from the
            running declaration
        expect: Attribute path to expected value (literal or sentinel)
        expect_error: Error type the reconcile must raise; the running
            declaration is then rolled back to its pre-step value
        import_verify: Re-derive the declaration from the live record and
            compare it with the running declaration
    """

    config: LoadBalancerSpec = field(default_factory=LoadBalancerSpec)
    expect: Dict[str, Any] = field(default_factory=dict)
    expect_error: Optional[Type[Exception]] = None
    import_verify: bool = False


@dataclass
class ScenarioResult:
    """Outcome of a scenario run."""

    passed: bool = True
    mismatches: List[Mismatch] = field(default_factory=list)
    steps_run: int = 0
    failed_step: Optional[int] = None
    error: Optional[str] = None
    destroy_errors: List[str] = field(default_factory=list)

    def fail(self, step: int, error: Optional[str] = None) -> None:
        self.passed = False
        self.failed_step = step
        if error:
            self.error = error


class VerificationHarness:
    """
    Drives one or more reconcilers through a list of steps.

    With ``count`` greater than one, every step is applied to each of the
    identical load balancers and every one of them is verified.
    """

    def __init__(
        self,
        client: SlbClient,
        config: Optional[ReconcilerConfig] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self.client = client
        self.config = config or ReconcilerConfig()
        self.cancel_event = cancel_event

    async def run_scenario(
        self, steps: List[StepSpec], count: int = 1
    ) -> ScenarioResult:
        """
        Run every step, then tear down.

        Returns:
            ScenarioResult listing all mismatches of the failing step.
        """
        reconcilers = [
            LoadBalancerReconciler(self.client, self.config, self.cancel_event)
            for _ in range(max(1, count))
        ]
        result = ScenarioResult()
        running = LoadBalancerSpec()

        try:
            for index, step in enumerate(steps, start=1):
                result.steps_run = index
                applied = running.merge(step.config)
                accepted = await self._run_step(
                    index, step, running, applied, reconcilers, result
                )
                if not result.passed:
                    break
                if accepted:
                    running = applied.settled()
        except SlbError as e:
            logger.error(f"Scenario aborted at step {result.steps_run}: {e}")
            result.fail(result.steps_run, f"{type(e).__name__}: {e}")
        finally:
            await self._teardown(reconcilers, result)

        if result.passed:
            logger.info(f"Scenario passed ({result.steps_run} steps)")
        return result

    async def _run_step(
        self,
        index: int,
        step: StepSpec,
        running: LoadBalancerSpec,
        applied: LoadBalancerSpec,
        reconcilers: List[LoadBalancerReconciler],
        result: ScenarioResult,
    ) -> bool:
        """
        Reconcile and verify one step.

        Returns:
            True if the declaration was accepted, False for an expected error.
        """
        logger.info(f"Step {index}: applying {applied.to_dict()}")
        accepted = True
        for reconciler in reconcilers:
            if step.expect_error is None:
                await reconciler.apply(applied)
                continue
            try:
                await reconciler.apply(applied)
            except step.expect_error as e:
                logger.info(f"Step {index}: got expected {type(e).__name__}: {e}")
                accepted = False
                continue
            result.mismatches.append(
                Mismatch(
                    path="(error)",
                    expected=step.expect_error.__name__,
                    actual=None,
                    step=index,
                    resource=reconciler.load_balancer_id or "",
                )
            )

        declared = applied.settled() if accepted else running
        for reconciler in reconcilers:
            # A rejected create leaves nothing to read back
            if not accepted and not reconciler.load_balancer_id:
                continue
            record = await reconciler.read()
            for mismatch in check_attributes(step.expect, record.to_attributes()):
                mismatch.step = index
                mismatch.resource = record.load_balancer_id
                result.mismatches.append(mismatch)
            if step.import_verify:
                result.mismatches.extend(
                    self._verify_import(index, declared, record)
                )

        if result.mismatches:
            for mismatch in result.mismatches:
                logger.error(f"Mismatch: {mismatch}")
            result.fail(index)
        return accepted

    @staticmethod
    def _verify_import(
        index: int, declared: LoadBalancerSpec, record: LoadBalancer
    ) -> List[Mismatch]:
        """Every declared value must survive a round trip through import."""
        imported = LoadBalancerSpec.from_record(record)
        mismatches = []
        for name, value in declared.set_fields().items():
            actual = imported.get(name)
            if actual != value:
                mismatches.append(
                    Mismatch(
                        path=f"import.{name}",
                        expected=repr(value),
                        actual=format_value(actual),
                        step=index,
                        resource=record.load_balancer_id,
                    )
                )
        return mismatches

    async def _teardown(
        self, reconcilers: List[LoadBalancerReconciler], result: ScenarioResult
    ) -> None:
        """
        Delete everything the scenario created and check it is gone.

        Cleanup ignores the cancellation token; it stays bounded by the call
        timeout and retry limits.
        """
        for reconciler in reconcilers:
            load_balancer_id = reconciler.load_balancer_id
            if not load_balancer_id:
                continue
            cleanup = LoadBalancerReconciler(
                self.client, self.config, load_balancer_id=load_balancer_id
            )
            try:
                await cleanup.delete(force=True)
                gone = await cleanup.wait_until_gone()
            except Exception as e:
                logger.error(f"Teardown of SLB {load_balancer_id} failed: {e}")
                result.destroy_errors.append(f"{load_balancer_id}: {e}")
                result.passed = False
                continue
            if not gone:
                logger.error(f"SLB {load_balancer_id} still readable after delete")
                result.destroy_errors.append(
                    f"{load_balancer_id}: still readable after delete"
                )
                result.passed = False
