"""
HTTP control plane client - aiohttp implementation of the remote interfaces.

Every call is an action-style JSON POST to the configured endpoint:
``{"Action": "...", "RegionId": "...", ...}``. Error responses carry
``Code``, ``Message`` and ``RequestId`` and are mapped onto the error
taxonomy in the ``errors`` module.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from client import (
    ClusterLookup,
    LoadBalancerPage,
    NetworkOwnershipOracle,
    SlbClient,
)
from config import ClientConfig
from errors import (
    NotFoundError,
    PermissionDeniedError,
    RemoteCallError,
    RemoteValidationError,
    TransientError,
)
from models import LoadBalancer

logger = logging.getLogger(__name__)

TRANSIENT_STATUSES = {408, 429, 500, 502, 503, 504}
TRANSIENT_CODE_MARKERS = ("throttling", "serviceunavailable", "internalerror", "busy")
NOT_FOUND_CODE_MARKERS = ("notfound", "notexist", "invalidloadbalancerid")

# Spec field name -> request parameter name
REQUEST_PARAMS = {
    "name": "LoadBalancerName",
    "address_type": "AddressType",
    "address_ip_version": "AddressIPVersion",
    "vswitch_id": "VSwitchId",
    "master_zone_id": "MasterZoneId",
    "slave_zone_id": "SlaveZoneId",
    "delete_protection": "DeleteProtection",
    "resource_group_id": "ResourceGroupId",
}


def classify_error(
    status: int, code: str = "", message: str = "", request_id: Optional[str] = None
) -> RemoteCallError:
    """
    Map an HTTP status and error code onto the error taxonomy.

    Args:
        status: HTTP status code
        code: Control plane error code
        message: Human-readable error message
        request_id: Request id for support lookups

    Returns:
        The matching RemoteCallError subclass instance.
    """
    lowered = code.lower()
    text = message or f"HTTP {status}"

    if status == 404 or any(m in lowered for m in NOT_FOUND_CODE_MARKERS):
        return NotFoundError(text, code=code, request_id=request_id)
    if status in (401, 403) or lowered.startswith("forbidden"):
        return PermissionDeniedError(text, code=code, request_id=request_id)
    if status in TRANSIENT_STATUSES or any(
        m in lowered for m in TRANSIENT_CODE_MARKERS
    ):
        return TransientError(text, code=code, request_id=request_id)
    return RemoteValidationError(text, code=code, request_id=request_id)


def _tags_param(tags: Dict[str, str]) -> List[Dict[str, str]]:
    return [{"Key": key, "Value": value} for key, value in sorted(tags.items())]


class ControlPlaneApi:
    """Shared request plumbing for the control plane clients."""

    def __init__(self, config: ClientConfig):
        self.endpoint = config.endpoint.rstrip("/")
        self.region = config.region
        self.access_key_id = config.access_key_id
        self._access_key_secret = config.access_key_secret

    def _get_headers(self) -> Dict[str, str]:
        """Get HTTP headers for control plane requests."""
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self.access_key_id:
            headers["X-Acs-AccessKey-Id"] = self.access_key_id
        if self._access_key_secret:
            headers["Authorization"] = f"Bearer {self._access_key_secret}"
        return headers

    async def _request(self, action: str, **params: Any) -> Dict[str, Any]:
        """
        Post one action and return the decoded response body.

        Raises:
            RemoteCallError: Classified by classify_error()
        """
        payload = {"Action": action, "RegionId": self.region}
        payload.update({k: v for k, v in params.items() if v is not None})

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.endpoint, headers=self._get_headers(), json=payload
                ) as response:
                    text = await response.text()
                    body = self._decode(text)
                    if response.status == 200 and "Code" not in body:
                        return body

                    error = classify_error(
                        response.status,
                        code=body.get("Code", ""),
                        message=body.get("Message", text),
                        request_id=body.get("RequestId"),
                    )
                    logger.debug(f"{action} failed: {response.status} - {error}")
                    raise error
        except aiohttp.ClientError as e:
            raise TransientError(
                f"{action} connection error: {e}", code="Network"
            ) from e

    @staticmethod
    def _decode(text: str) -> Dict[str, Any]:
        if not text:
            return {}
        try:
            body = json.loads(text)
        except json.JSONDecodeError:
            return {}
        return body if isinstance(body, dict) else {}


class HttpSlbClient(ControlPlaneApi, SlbClient):
    """Load balancer client backed by the HTTP control plane."""

    async def list_load_balancers(
        self, region: str, page_size: int, page_number: int
    ) -> LoadBalancerPage:
        body = await self._request(
            "DescribeLoadBalancers",
            RegionId=region,
            PageSize=page_size,
            PageNumber=page_number,
        )
        items = (body.get("LoadBalancers") or {}).get("LoadBalancer", [])
        total = body.get("TotalCount")
        return LoadBalancerPage(
            records=[LoadBalancer.from_api(item) for item in items],
            total_count=int(total) if total is not None else None,
        )

    async def describe_load_balancer(self, load_balancer_id: str) -> LoadBalancer:
        body = await self._request(
            "DescribeLoadBalancerAttribute", LoadBalancerId=load_balancer_id
        )
        if not body.get("LoadBalancerId"):
            raise NotFoundError(
                f"Load balancer {load_balancer_id} does not exist",
                code="InvalidLoadBalancerId.NotFound",
            )
        return LoadBalancer.from_api(body)

    async def create_load_balancer(self, params: Dict[str, Any]) -> str:
        request = {
            REQUEST_PARAMS[name]: value
            for name, value in params.items()
            if name in REQUEST_PARAMS
        }
        if params.get("tags"):
            request["Tags"] = _tags_param(params["tags"])
        body = await self._request("CreateLoadBalancer", **request)
        load_balancer_id = body.get("LoadBalancerId")
        if not load_balancer_id:
            raise RemoteValidationError(
                "CreateLoadBalancer returned no LoadBalancerId",
                request_id=body.get("RequestId"),
            )
        logger.info(f"Created load balancer {load_balancer_id}")
        return load_balancer_id

    async def update_load_balancer(
        self, load_balancer_id: str, fields: Dict[str, Any]
    ) -> None:
        request: Dict[str, Any] = {
            REQUEST_PARAMS[name]: value
            for name, value in fields.items()
            if name in REQUEST_PARAMS
        }
        if "tags" in fields:
            # Whole-set replacement; an empty list clears every tag
            request["Tags"] = _tags_param(fields["tags"])
            request["ReplaceTags"] = True
        await self._request(
            "ModifyLoadBalancerAttributes", LoadBalancerId=load_balancer_id, **request
        )

    async def delete_load_balancer(self, load_balancer_id: str) -> None:
        await self._request("DeleteLoadBalancer", LoadBalancerId=load_balancer_id)
        logger.info(f"Deleted load balancer {load_balancer_id}")


class HttpNetworkOracle(ControlPlaneApi, NetworkOwnershipOracle):
    """
    Flags VPCs and vSwitches created by test runs.

    A network construct needs sweeping when its name starts with one of
    the sweep prefixes.
    """

    def __init__(self, config: ClientConfig, name_prefixes: List[str]):
        super().__init__(config)
        self.name_prefixes = [p.lower() for p in name_prefixes]

    def _has_prefix(self, name: str) -> bool:
        lowered = name.lower()
        return any(lowered.startswith(p) for p in self.name_prefixes)

    async def needs_sweep(self, vpc_id: str, vswitch_id: str) -> bool:
        if vpc_id:
            body = await self._request("DescribeVpcAttribute", VpcId=vpc_id)
            if self._has_prefix(body.get("VpcName", "")):
                return True
        if vswitch_id:
            body = await self._request(
                "DescribeVSwitchAttributes", VSwitchId=vswitch_id
            )
            if self._has_prefix(body.get("VSwitchName", "")):
                return True
        return False


class HttpClusterLookup(ControlPlaneApi, ClusterLookup):
    """Looks up container clusters by name."""

    async def cluster_exists(self, name: str) -> bool:
        body = await self._request("DescribeClusters", Name=name)
        clusters = body.get("Clusters") or []
        return any(cluster.get("name") == name for cluster in clusters)
