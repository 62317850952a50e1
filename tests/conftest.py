"""Pytest configuration and fixtures."""

import copy
import itertools
from typing import Any, Dict, List, Optional, Set

import pytest

from client import ClusterLookup, LoadBalancerPage, NetworkOwnershipOracle, SlbClient
from config import ReconcilerConfig, SweepConfig
from errors import NotFoundError, RemoteValidationError
from models import LoadBalancer


class FakeSlbClient(SlbClient):
    """
    In-memory control plane.

    Failures can be queued per method name; each call pops the next one.
    Every call is recorded in ``calls`` as ``(method, *args)``.
    """

    MUTATIONS = ("create", "update", "delete")

    def __init__(self, report_total: bool = True):
        self.records: Dict[str, LoadBalancer] = {}
        self.calls: List[tuple] = []
        self.failures: Dict[str, List[Exception]] = {}
        self.report_total = report_total
        self._ids = itertools.count(1)

    def fail(self, method: str, *errors: Exception) -> None:
        self.failures.setdefault(method, []).extend(errors)

    def _maybe_fail(self, method: str) -> None:
        queued = self.failures.get(method)
        if queued:
            raise queued.pop(0)

    def add(self, record: LoadBalancer) -> LoadBalancer:
        self.records[record.load_balancer_id] = record
        return record

    def mutation_calls(self) -> List[tuple]:
        return [c for c in self.calls if c[0] in self.MUTATIONS]

    def calls_to(self, method: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == method]

    def _get(self, load_balancer_id: str) -> LoadBalancer:
        record = self.records.get(load_balancer_id)
        if record is None:
            raise NotFoundError(
                f"The specified load balancer {load_balancer_id} does not exist",
                code="InvalidLoadBalancerId.NotFound",
            )
        return record

    async def list_load_balancers(
        self, region: str, page_size: int, page_number: int
    ) -> LoadBalancerPage:
        self.calls.append(("list", region, page_size, page_number))
        self._maybe_fail("list")
        ordered = [self.records[k] for k in sorted(self.records)]
        start = (page_number - 1) * page_size
        page = [copy.deepcopy(r) for r in ordered[start:start + page_size]]
        total = len(ordered) if self.report_total else None
        return LoadBalancerPage(records=page, total_count=total)

    async def describe_load_balancer(self, load_balancer_id: str) -> LoadBalancer:
        self.calls.append(("describe", load_balancer_id))
        self._maybe_fail("describe")
        return copy.deepcopy(self._get(load_balancer_id))

    async def create_load_balancer(self, params: Dict[str, Any]) -> str:
        self.calls.append(("create", dict(params)))
        self._maybe_fail("create")
        number = next(self._ids)
        load_balancer_id = f"lb-{number:06d}"
        vswitch_id = params.get("vswitch_id", "")
        self.records[load_balancer_id] = LoadBalancer(
            load_balancer_id=load_balancer_id,
            name=params.get("name", f"auto_named_slb_{number}"),
            address_type=params.get("address_type", "internet"),
            address_ip_version=params.get("address_ip_version", "ipv4"),
            address=f"10.0.0.{number}",
            vpc_id="vpc-fake" if vswitch_id else "",
            vswitch_id=vswitch_id,
            master_zone_id=params.get("master_zone_id", "cn-hangzhou-a"),
            slave_zone_id=params.get("slave_zone_id", "cn-hangzhou-b"),
            delete_protection=params.get("delete_protection", "off"),
            resource_group_id=params.get("resource_group_id", "rg-default"),
            specification="slb.s1.small",
            status="active",
            tags=dict(params.get("tags", {})),
        )
        return load_balancer_id

    async def update_load_balancer(
        self, load_balancer_id: str, fields: Dict[str, Any]
    ) -> None:
        self.calls.append(("update", load_balancer_id, copy.deepcopy(fields)))
        self._maybe_fail("update")
        record = self._get(load_balancer_id)
        for name, value in fields.items():
            setattr(record, name, dict(value) if name == "tags" else value)

    async def delete_load_balancer(self, load_balancer_id: str) -> None:
        self.calls.append(("delete", load_balancer_id))
        self._maybe_fail("delete")
        record = self._get(load_balancer_id)
        if record.delete_protection == "on":
            raise RemoteValidationError(
                "The load balancer has delete protection enabled",
                code="OperationDenied.DeleteProtection",
            )
        del self.records[load_balancer_id]


class FakeNetworkOracle(NetworkOwnershipOracle):
    """Flags the configured VPC / vSwitch ids for sweeping."""

    def __init__(self, swept: Optional[Set[str]] = None, error: Exception = None):
        self.swept = swept or set()
        self.error = error
        self.calls: List[tuple] = []

    async def needs_sweep(self, vpc_id: str, vswitch_id: str) -> bool:
        self.calls.append((vpc_id, vswitch_id))
        if self.error is not None:
            raise self.error
        return vpc_id in self.swept or vswitch_id in self.swept


class FakeClusterLookup(ClusterLookup):
    """Knows a fixed set of live clusters; can be told to fail."""

    def __init__(self, clusters: Optional[Set[str]] = None, error: Exception = None):
        self.clusters = clusters or set()
        self.error = error
        self.calls: List[str] = []

    async def cluster_exists(self, name: str) -> bool:
        self.calls.append(name)
        if self.error is not None:
            raise self.error
        return name in self.clusters


@pytest.fixture
def fast_config():
    """Reconciler config without sleeps."""
    return ReconcilerConfig(
        call_timeout=5.0,
        max_attempts=3,
        backoff_base_delay=0.0,
        backoff_max_delay=0.0,
        backoff_jitter_factor=0.0,
        confirm_attempts=3,
        confirm_interval=0.0,
    )


@pytest.fixture
def sweep_config():
    """Sweep config with a small page size."""
    return SweepConfig(page_size=2, max_concurrent_deletes=2)


@pytest.fixture
def fake_client():
    return FakeSlbClient()


@pytest.fixture
def network_oracle():
    return FakeNetworkOracle()


@pytest.fixture
def cluster_lookup():
    return FakeClusterLookup()


@pytest.fixture
def make_record():
    """Factory for LoadBalancer records."""

    def _make(load_balancer_id: str, name: str = "", **kwargs) -> LoadBalancer:
        return LoadBalancer(load_balancer_id=load_balancer_id, name=name, **kwargs)

    return _make


@pytest.fixture
def sample_api_item():
    """Sample DescribeLoadBalancerAttribute response body."""
    return {
        "RequestId": "req-1",
        "LoadBalancerId": "lb-abc123",
        "LoadBalancerName": "tf-testAccSlb",
        "AddressType": "intranet",
        "AddressIPVersion": "ipv4",
        "Address": "192.168.0.10",
        "VpcId": "vpc-1",
        "VSwitchId": "vsw-1",
        "MasterZoneId": "cn-hangzhou-a",
        "SlaveZoneId": "cn-hangzhou-b",
        "DeleteProtection": "on",
        "ResourceGroupId": "rg-1",
        "LoadBalancerSpec": "slb.s1.small",
        "LoadBalancerStatus": "active",
        "Tags": {
            "Tag": [
                {"TagKey": "env", "TagValue": "test"},
                {"TagKey": "team", "TagValue": "net"},
            ]
        },
    }
