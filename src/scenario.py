"""
Scenario files - YAML descriptions of harness runs.

Example::

    name: classic
    count: 1
    steps:
      - config: {name: tf-testAccSlbClassic, address_type: internet}
        expect: {address_type: internet, master_zone_id: "<any>"}
      - config: {address_type: intranet}
        expect_error: ImmutableFieldChanged
        expect: {address_type: internet}
      - config: {tags: {a: "1"}}
        expect: {"tags.%": "1", tags.a: "1"}
      - config: {tags: "<remove>"}
        expect: {"tags.%": "<absent>"}

The ``<any>``, ``<absent>`` and ``<remove>`` markers only exist in the file
format; they are converted to ANY_NON_EMPTY, ABSENT and REMOVED on load.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from errors import (
    CreateFailedError,
    ImmutableFieldChangedError,
    InvalidSpecError,
    NotFoundError,
    PermissionDeniedError,
    RemoteValidationError,
    UpdateFailedError,
)
from harness import ABSENT, ANY_NON_EMPTY, StepSpec, as_expected
from models import REMOVED, SPEC_FIELDS, LoadBalancerSpec

logger = logging.getLogger(__name__)

ANY_MARKER = "<any>"
ABSENT_MARKER = "<absent>"
REMOVE_MARKER = "<remove>"

ERROR_NAMES = {
    "ImmutableFieldChanged": ImmutableFieldChangedError,
    "InvalidSpec": InvalidSpecError,
    "CreateFailed": CreateFailedError,
    "UpdateFailed": UpdateFailedError,
    "NotFound": NotFoundError,
    "PermissionDenied": PermissionDeniedError,
    "Validation": RemoteValidationError,
}


class StepModel(BaseModel):
    """One step as written in a scenario file."""

    config: Dict[str, Any] = Field(default_factory=dict)
    expect: Dict[str, Any] = Field(default_factory=dict)
    expect_error: Optional[str] = None
    import_verify: bool = False

    @field_validator("config")
    @classmethod
    def validate_config_fields(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        unknown = sorted(set(v) - set(SPEC_FIELDS))
        if unknown:
            raise ValueError(f"unknown load balancer field(s): {', '.join(unknown)}")
        return v

    @field_validator("expect_error")
    @classmethod
    def validate_expect_error(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in ERROR_NAMES:
            raise ValueError(
                f"unknown error name '{v}', expected one of: "
                f"{', '.join(sorted(ERROR_NAMES))}"
            )
        return v


class ScenarioModel(BaseModel):
    """Top-level scenario file."""

    name: str = "scenario"
    count: int = Field(default=1, ge=1, le=50)
    steps: List[StepModel] = Field(min_length=1)


@dataclass
class Scenario:
    """A loaded scenario ready for VerificationHarness.run_scenario()."""

    name: str
    steps: List[StepSpec]
    count: int = 1


def _on_off(value: Any) -> Any:
    # YAML 1.1 reads bare on/off as booleans
    if isinstance(value, bool):
        return "on" if value else "off"
    return value


def _convert_config(config: Dict[str, Any]) -> LoadBalancerSpec:
    values = {}
    for name, value in config.items():
        if value == REMOVE_MARKER:
            value = REMOVED
        elif name == "delete_protection":
            value = _on_off(value)
        values[name] = value
    return LoadBalancerSpec.from_dict(values)


def _convert_expect(expect: Dict[str, Any]) -> Dict[str, Any]:
    converted = {}
    for path, value in expect.items():
        if value == ANY_MARKER:
            converted[path] = ANY_NON_EMPTY
        elif value == ABSENT_MARKER:
            converted[path] = ABSENT
        elif path == "delete_protection":
            converted[path] = as_expected(_on_off(value))
        else:
            converted[path] = as_expected(value)
    return converted


def build_scenario(data: Dict[str, Any]) -> Scenario:
    """
    Validate a decoded scenario document and convert it.

    Raises:
        pydantic.ValidationError: If the document is malformed
    """
    model = ScenarioModel.model_validate(data)
    steps = [
        StepSpec(
            config=_convert_config(step.config),
            expect=_convert_expect(step.expect),
            expect_error=ERROR_NAMES[step.expect_error] if step.expect_error else None,
            import_verify=step.import_verify,
        )
        for step in model.steps
    ]
    logger.debug(f"Loaded scenario {model.name} with {len(steps)} steps")
    return Scenario(name=model.name, steps=steps, count=model.count)


def load_scenario(path: str) -> Scenario:
    """Load a scenario from a YAML file."""
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    return build_scenario(data)
