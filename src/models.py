"""
Core load balancer types.

LoadBalancer is the remote record as read back from the control plane.
LoadBalancerSpec is the declared state: every field is either UNSET (no
opinion), a concrete value, or REMOVED (dropped since the previous
declaration, meaning "revert to default").
"""

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, List

from errors import InvalidSpecError


class AddressType(Enum):
    """Network address type of a load balancer."""

    INTERNET = "internet"
    INTRANET = "intranet"


class IpVersion(Enum):
    """IP version of the load balancer address."""

    IPV4 = "ipv4"
    IPV6 = "ipv6"


class FieldState(Enum):
    """Markers for declared fields that carry no concrete value."""

    UNSET = "unset"
    REMOVED = "removed"


UNSET = FieldState.UNSET
REMOVED = FieldState.REMOVED

# Fields that can be changed through an update call
MUTABLE_FIELDS = ("name", "delete_protection", "resource_group_id", "tags")

# Fields that force recreation when changed
IMMUTABLE_FIELDS = (
    "address_type",
    "address_ip_version",
    "vswitch_id",
    "master_zone_id",
    "slave_zone_id",
)

SPEC_FIELDS = MUTABLE_FIELDS + IMMUTABLE_FIELDS

# Values a REMOVED field reverts to and sends explicitly. Fields missing here
# are computed by the remote side: removing one stops managing it and sends
# nothing, so the remote value is kept.
FIELD_DEFAULTS: Dict[str, Any] = {
    "address_type": AddressType.INTERNET.value,
    "address_ip_version": IpVersion.IPV4.value,
    "delete_protection": "off",
    "tags": {},
}


@dataclass
class LoadBalancer:
    """Remote-side representation of a load balancer instance."""

    load_balancer_id: str
    name: str = ""
    address_type: str = AddressType.INTERNET.value
    address_ip_version: str = IpVersion.IPV4.value
    address: str = ""
    vpc_id: str = ""
    vswitch_id: str = ""
    master_zone_id: str = ""
    slave_zone_id: str = ""
    delete_protection: str = "off"
    resource_group_id: str = ""
    specification: str = ""
    status: str = ""
    tags: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "LoadBalancer":
        """
        Build a record from a control plane response item.

        Tags arrive either as ``{"Tag": [{"TagKey": ..., "TagValue": ...}]}``
        or as a plain list of those entries.
        """
        raw_tags = data.get("Tags") or {}
        if isinstance(raw_tags, dict):
            raw_tags = raw_tags.get("Tag", [])
        tags = {t["TagKey"]: t.get("TagValue", "") for t in raw_tags}

        return cls(
            load_balancer_id=data["LoadBalancerId"],
            name=data.get("LoadBalancerName", ""),
            address_type=data.get("AddressType", AddressType.INTERNET.value),
            address_ip_version=data.get("AddressIPVersion", IpVersion.IPV4.value),
            address=data.get("Address", ""),
            vpc_id=data.get("VpcId", ""),
            vswitch_id=data.get("VSwitchId", ""),
            master_zone_id=data.get("MasterZoneId", ""),
            slave_zone_id=data.get("SlaveZoneId", ""),
            delete_protection=data.get("DeleteProtection", "off"),
            resource_group_id=data.get("ResourceGroupId", ""),
            specification=data.get("LoadBalancerSpec", ""),
            status=data.get("LoadBalancerStatus", ""),
            tags=tags,
        )

    def to_attributes(self) -> Dict[str, str]:
        """
        Flatten into a string attribute map.

        Tags are rendered as ``tags.%`` (the count, omitted when there are
        no tags) plus one ``tags.<key>`` entry per tag.
        """
        attributes = {
            "id": self.load_balancer_id,
            "name": self.name,
            "address_type": self.address_type,
            "address_ip_version": self.address_ip_version,
            "address": self.address,
            "vpc_id": self.vpc_id,
            "vswitch_id": self.vswitch_id,
            "master_zone_id": self.master_zone_id,
            "slave_zone_id": self.slave_zone_id,
            "delete_protection": self.delete_protection,
            "resource_group_id": self.resource_group_id,
            "specification": self.specification,
            "status": self.status,
        }
        if self.tags:
            attributes["tags.%"] = str(len(self.tags))
            for key, value in self.tags.items():
                attributes[f"tags.{key}"] = value
        return attributes


@dataclass
class LoadBalancerSpec:
    """
    Declared state for one load balancer.

    A delta uses the same type: UNSET fields keep the running value,
    concrete values override it and REMOVED drops it.
    """

    name: Any = UNSET
    address_type: Any = UNSET
    address_ip_version: Any = UNSET
    vswitch_id: Any = UNSET
    master_zone_id: Any = UNSET
    slave_zone_id: Any = UNSET
    delete_protection: Any = UNSET
    resource_group_id: Any = UNSET
    tags: Any = UNSET

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoadBalancerSpec":
        """
        Build a declaration from a field map.

        Raises:
            InvalidSpecError: If the map contains unknown field names
        """
        unknown = sorted(set(data) - set(SPEC_FIELDS))
        if unknown:
            raise InvalidSpecError(
                f"Unknown load balancer field(s): {', '.join(unknown)}"
            )
        values = {}
        for name, value in data.items():
            if name == "tags" and isinstance(value, dict):
                value = {str(k): str(v) for k, v in value.items()}
            values[name] = value
        return cls(**values)

    @classmethod
    def from_record(cls, record: LoadBalancer) -> "LoadBalancerSpec":
        """Derive a fully-set declaration from a live record (import)."""
        return cls(
            name=record.name,
            address_type=record.address_type,
            address_ip_version=record.address_ip_version,
            vswitch_id=record.vswitch_id,
            master_zone_id=record.master_zone_id,
            slave_zone_id=record.slave_zone_id,
            delete_protection=record.delete_protection,
            resource_group_id=record.resource_group_id,
            tags=dict(record.tags),
        )

    def get(self, name: str) -> Any:
        return getattr(self, name)

    def is_set(self, name: str) -> bool:
        return not isinstance(self.get(name), FieldState)

    def set_fields(self) -> Dict[str, Any]:
        """Return the fields carrying concrete values."""
        return {f.name: self.get(f.name) for f in fields(self) if self.is_set(f.name)}

    def removed_fields(self) -> List[str]:
        return [f.name for f in fields(self) if self.get(f.name) is REMOVED]

    def desired(self, name: str) -> Any:
        """
        Resolve the value this declaration asks for.

        Returns UNSET when the declaration has no opinion, including removed
        fields that have no client-side default.
        """
        value = self.get(name)
        if value is REMOVED:
            default = FIELD_DEFAULTS.get(name, UNSET)
            return dict(default) if isinstance(default, dict) else default
        return value

    def effective_values(self) -> Dict[str, Any]:
        """Concrete values after resolving removals to their defaults."""
        values = {}
        for f in fields(self):
            value = self.desired(f.name)
            if value is not UNSET:
                values[f.name] = value
        return values

    def merge(self, delta: "LoadBalancerSpec") -> "LoadBalancerSpec":
        """
        Overlay a delta on this declaration.

        Removed fields stay marked REMOVED in the result so the reconciler
        can send their default. Call settled() before merging the next delta.
        """
        changes = {}
        for f in fields(delta):
            value = delta.get(f.name)
            if value is not UNSET:
                changes[f.name] = value
        return replace(self, **changes)

    def settled(self) -> "LoadBalancerSpec":
        """Forget removal markers once they have been applied."""
        return replace(self, **{name: UNSET for name in self.removed_fields()})

    def to_dict(self) -> Dict[str, Any]:
        """Field map with removal markers rendered as None."""
        result: Dict[str, Any] = {}
        for f in fields(self):
            value = self.get(f.name)
            if value is UNSET:
                continue
            result[f.name] = None if value is REMOVED else value
        return result

