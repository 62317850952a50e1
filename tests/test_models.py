"""Unit tests for models.py - load balancer records and declarations."""

import pytest

from errors import InvalidSpecError
from models import (
    REMOVED,
    UNSET,
    LoadBalancer,
    LoadBalancerSpec,
)


class TestLoadBalancer:
    """Tests for the LoadBalancer record."""

    def test_from_api(self, sample_api_item):
        """Test building a record from a control plane response."""
        record = LoadBalancer.from_api(sample_api_item)
        assert record.load_balancer_id == "lb-abc123"
        assert record.name == "tf-testAccSlb"
        assert record.address_type == "intranet"
        assert record.vpc_id == "vpc-1"
        assert record.vswitch_id == "vsw-1"
        assert record.delete_protection == "on"
        assert record.specification == "slb.s1.small"
        assert record.tags == {"env": "test", "team": "net"}

    def test_from_api_tag_list(self):
        """Test tags given as a plain list."""
        record = LoadBalancer.from_api(
            {
                "LoadBalancerId": "lb-1",
                "Tags": [{"TagKey": "a", "TagValue": "1"}],
            }
        )
        assert record.tags == {"a": "1"}

    def test_from_api_defaults(self):
        """Test defaults for missing fields."""
        record = LoadBalancer.from_api({"LoadBalancerId": "lb-1"})
        assert record.address_type == "internet"
        assert record.address_ip_version == "ipv4"
        assert record.delete_protection == "off"
        assert record.tags == {}

    def test_attributes_with_tags(self):
        """Test tag flattening into count and per-key entries."""
        record = LoadBalancer("lb-1", name="x", tags={"a": "1", "b": "2"})
        attributes = record.to_attributes()
        assert attributes["id"] == "lb-1"
        assert attributes["tags.%"] == "2"
        assert attributes["tags.a"] == "1"
        assert attributes["tags.b"] == "2"

    def test_attributes_without_tags(self):
        """Test that the tag count is absent when there are no tags."""
        attributes = LoadBalancer("lb-1").to_attributes()
        assert "tags.%" not in attributes
        assert not any(key.startswith("tags.") for key in attributes)


class TestLoadBalancerSpec:
    """Tests for the declared state."""

    def test_defaults_are_unset(self):
        """Test that a new spec has no opinion on anything."""
        spec = LoadBalancerSpec()
        assert spec.set_fields() == {}
        assert spec.effective_values() == {}
        assert spec.is_set("name") is False

    def test_from_dict(self):
        """Test building a spec from a field map."""
        spec = LoadBalancerSpec.from_dict({"name": "x", "tags": {"a": 1}})
        assert spec.name == "x"
        assert spec.tags == {"a": "1"}
        assert spec.address_type is UNSET

    def test_from_dict_unknown_field(self):
        """Test that unknown fields are rejected."""
        with pytest.raises(InvalidSpecError) as exc_info:
            LoadBalancerSpec.from_dict({"name": "x", "bandwidth": 5})
        assert "bandwidth" in str(exc_info.value)

    def test_from_record(self):
        """Test deriving a declaration from a live record."""
        record = LoadBalancer(
            "lb-1",
            name="x",
            master_zone_id="z-a",
            slave_zone_id="z-b",
            resource_group_id="rg-1",
            tags={"a": "1"},
        )
        spec = LoadBalancerSpec.from_record(record)
        assert spec.name == "x"
        assert spec.address_type == "internet"
        assert spec.tags == {"a": "1"}
        assert spec.tags is not record.tags

    def test_merge_overlays_delta(self):
        """Test that a delta overrides only the fields it sets."""
        base = LoadBalancerSpec(name="x", address_type="internet")
        merged = base.merge(LoadBalancerSpec(tags={"a": "1"}))
        assert merged.name == "x"
        assert merged.address_type == "internet"
        assert merged.tags == {"a": "1"}
        assert base.tags is UNSET

    def test_removed_resolves_to_default(self):
        """Test that removed fields with defaults resolve to them."""
        spec = LoadBalancerSpec(
            address_type=REMOVED, tags=REMOVED, delete_protection=REMOVED
        )
        assert spec.desired("address_type") == "internet"
        assert spec.desired("tags") == {}
        assert spec.desired("delete_protection") == "off"
        assert spec.removed_fields() == ["address_type", "delete_protection", "tags"]

    def test_removed_computed_field_has_no_opinion(self):
        """Test that removed computed fields resolve to UNSET."""
        spec = LoadBalancerSpec(master_zone_id=REMOVED, name=REMOVED)
        assert spec.desired("master_zone_id") is UNSET
        assert spec.desired("name") is UNSET
        assert spec.effective_values() == {}

    def test_settled_forgets_removals(self):
        """Test that removal is applied once."""
        spec = LoadBalancerSpec(name="x", tags=REMOVED).settled()
        assert spec.name == "x"
        assert spec.tags is UNSET

    def test_default_dict_not_shared(self):
        """Test that the tag default is a fresh dict each time."""
        spec = LoadBalancerSpec(tags=REMOVED)
        spec.desired("tags")["a"] = "1"
        assert spec.desired("tags") == {}

    def test_to_dict(self):
        """Test rendering with removal markers as None."""
        spec = LoadBalancerSpec(name="x", tags=REMOVED)
        assert spec.to_dict() == {"name": "x", "tags": None}
