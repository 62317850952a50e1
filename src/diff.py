"""
Field-level diff between a declared spec and a live load balancer.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from models import IMMUTABLE_FIELDS, SPEC_FIELDS, UNSET, LoadBalancer, LoadBalancerSpec


@dataclass
class FieldChange:
    """One differing field."""

    field: str
    old: Any
    new: Any

    @property
    def immutable(self) -> bool:
        return self.field in IMMUTABLE_FIELDS


@dataclass
class Diff:
    """Set of field changes computed for one reconciliation cycle."""

    changes: List[FieldChange] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.changes)

    def __len__(self) -> int:
        return len(self.changes)

    @property
    def fields(self) -> List[str]:
        return [c.field for c in self.changes]

    def immutable_changes(self) -> List[FieldChange]:
        return [c for c in self.changes if c.immutable]

    def update_fields(self) -> Dict[str, Any]:
        """
        Mutable changes as an update payload.

        Tags are always the full desired map, never a partial patch.
        """
        return {c.field: c.new for c in self.changes if not c.immutable}


def _live_value(record: LoadBalancer, name: str) -> Any:
    value = getattr(record, name)
    if isinstance(value, dict):
        return dict(value)
    return value


def compute_diff(spec: LoadBalancerSpec, record: LoadBalancer) -> Diff:
    """
    Compare every field the declaration has an opinion on with the live record.

    Removed fields with a default are compared against that default; removed
    computed fields and unset fields are skipped.
    """
    diff = Diff()
    for name in SPEC_FIELDS:
        desired = spec.desired(name)
        if desired is UNSET:
            continue
        live = _live_value(record, name)
        if desired != live:
            diff.changes.append(FieldChange(field=name, old=live, new=desired))
    return diff
