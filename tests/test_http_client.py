"""Unit tests for http_client.py - error mapping and request building."""

import pytest
from unittest.mock import AsyncMock, patch

from config import ClientConfig
from errors import (
    NotFoundError,
    PermissionDeniedError,
    RemoteValidationError,
    TransientError,
)
from http_client import (
    ControlPlaneApi,
    HttpClusterLookup,
    HttpNetworkOracle,
    HttpSlbClient,
    classify_error,
)


@pytest.fixture
def client_config():
    return ClientConfig(
        endpoint="https://slb.example.com/",
        region="cn-hangzhou",
        access_key_id="AKID",
        access_key_secret="secret",
    )


class TestClassifyError:
    """Tests for classify_error."""

    @pytest.mark.parametrize(
        "status,code,expected",
        [
            (404, "", NotFoundError),
            (400, "InvalidLoadBalancerId.NotFound", NotFoundError),
            (400, "LoadBalancer.NotExist", NotFoundError),
            (403, "", PermissionDeniedError),
            (400, "Forbidden.RAM", PermissionDeniedError),
            (503, "", TransientError),
            (429, "", TransientError),
            (400, "Throttling.User", TransientError),
            (400, "ServiceUnavailable", TransientError),
            (400, "InvalidParameter", RemoteValidationError),
        ],
    )
    def test_mapping(self, status, code, expected):
        """Test status and code mapping."""
        error = classify_error(status, code=code, message="m", request_id="r")
        assert type(error) is expected
        assert error.code == code
        assert error.request_id == "r"

    def test_message_defaults_to_status(self):
        """Test the fallback message."""
        error = classify_error(500)
        assert str(error) == "HTTP 500"


class TestControlPlaneApi:
    """Tests for shared request plumbing."""

    def test_endpoint_trailing_slash_stripped(self, client_config):
        """Test endpoint normalisation."""
        api = ControlPlaneApi(client_config)
        assert api.endpoint == "https://slb.example.com"

    def test_headers(self, client_config):
        """Test authentication headers."""
        headers = ControlPlaneApi(client_config)._get_headers()
        assert headers["X-Acs-AccessKey-Id"] == "AKID"
        assert headers["Authorization"] == "Bearer secret"

    def test_headers_without_credentials(self):
        """Test that empty credentials add no auth headers."""
        headers = ControlPlaneApi(ClientConfig())._get_headers()
        assert "Authorization" not in headers
        assert "X-Acs-AccessKey-Id" not in headers

    @pytest.mark.parametrize("text", ["", "not json", "[1, 2]"])
    def test_decode_non_object(self, text):
        """Test that undecodable bodies become empty dicts."""
        assert ControlPlaneApi._decode(text) == {}


@pytest.mark.asyncio
class TestHttpSlbClient:
    """Tests for HttpSlbClient request building."""

    async def test_list_load_balancers(self, client_config, sample_api_item):
        """Test page decoding."""
        client = HttpSlbClient(client_config)
        body = {"LoadBalancers": {"LoadBalancer": [sample_api_item]}, "TotalCount": 7}
        with patch.object(client, "_request", AsyncMock(return_value=body)) as req:
            page = await client.list_load_balancers("cn-beijing", 10, 2)
        req.assert_awaited_once_with(
            "DescribeLoadBalancers", RegionId="cn-beijing", PageSize=10, PageNumber=2
        )
        assert [r.load_balancer_id for r in page.records] == ["lb-abc123"]
        assert page.total_count == 7

    async def test_list_without_total(self, client_config):
        """Test that a missing TotalCount is reported as None."""
        client = HttpSlbClient(client_config)
        with patch.object(client, "_request", AsyncMock(return_value={})):
            page = await client.list_load_balancers("cn-beijing", 10, 1)
        assert page.records == []
        assert page.total_count is None

    async def test_describe_missing_id_is_not_found(self, client_config):
        """Test that an empty describe body means NotFound."""
        client = HttpSlbClient(client_config)
        with patch.object(client, "_request", AsyncMock(return_value={})):
            with pytest.raises(NotFoundError):
                await client.describe_load_balancer("lb-1")

    async def test_create_maps_params(self, client_config):
        """Test create parameter mapping."""
        client = HttpSlbClient(client_config)
        req = AsyncMock(return_value={"LoadBalancerId": "lb-new"})
        with patch.object(client, "_request", req):
            load_balancer_id = await client.create_load_balancer(
                {"name": "x", "address_type": "internet", "tags": {"b": "2", "a": "1"}}
            )
        assert load_balancer_id == "lb-new"
        req.assert_awaited_once_with(
            "CreateLoadBalancer",
            LoadBalancerName="x",
            AddressType="internet",
            Tags=[{"Key": "a", "Value": "1"}, {"Key": "b", "Value": "2"}],
        )

    async def test_create_without_id(self, client_config):
        """Test that a create response without an id is an error."""
        client = HttpSlbClient(client_config)
        with patch.object(client, "_request", AsyncMock(return_value={})):
            with pytest.raises(RemoteValidationError):
                await client.create_load_balancer({"name": "x"})

    async def test_update_replaces_tags(self, client_config):
        """Test that tag updates replace the whole set."""
        client = HttpSlbClient(client_config)
        req = AsyncMock(return_value={})
        with patch.object(client, "_request", req):
            await client.update_load_balancer("lb-1", {"name": "y", "tags": {}})
        req.assert_awaited_once_with(
            "ModifyLoadBalancerAttributes",
            LoadBalancerId="lb-1",
            LoadBalancerName="y",
            Tags=[],
            ReplaceTags=True,
        )


@pytest.mark.asyncio
class TestLookups:
    """Tests for the network oracle and cluster lookup."""

    async def test_network_oracle_vpc_prefix(self, client_config):
        """Test that a test-run VPC name flags the network."""
        oracle = HttpNetworkOracle(client_config, ["tf-testAcc"])
        req = AsyncMock(return_value={"VpcName": "TF-TESTACC-vpc"})
        with patch.object(oracle, "_request", req):
            assert await oracle.needs_sweep("vpc-1", "") is True
        req.assert_awaited_once_with("DescribeVpcAttribute", VpcId="vpc-1")

    async def test_network_oracle_checks_vswitch(self, client_config):
        """Test the vSwitch fallback."""
        oracle = HttpNetworkOracle(client_config, ["tf-testAcc"])
        req = AsyncMock(
            side_effect=[{"VpcName": "prod"}, {"VSwitchName": "tf-testAccVsw"}]
        )
        with patch.object(oracle, "_request", req):
            assert await oracle.needs_sweep("vpc-1", "vsw-1") is True

    async def test_network_oracle_no_match(self, client_config):
        """Test that unrelated networks are not flagged."""
        oracle = HttpNetworkOracle(client_config, ["tf-testAcc"])
        req = AsyncMock(return_value={"VpcName": "prod"})
        with patch.object(oracle, "_request", req):
            assert await oracle.needs_sweep("vpc-1", "") is False

    async def test_cluster_exists(self, client_config):
        """Test cluster lookup by exact name."""
        lookup = HttpClusterLookup(client_config)
        body = {"Clusters": [{"name": "other"}, {"name": "k8s-slb"}]}
        with patch.object(lookup, "_request", AsyncMock(return_value=body)):
            assert await lookup.cluster_exists("k8s-slb") is True
            assert await lookup.cluster_exists("gone") is False
