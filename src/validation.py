"""
Schema Validation - declared load balancer state.

Checks declared fields against a JSON Schema and enforces the joint
constraints between address type and network placement.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from jsonschema import Draft7Validator, ValidationError

from models import AddressType, IpVersion

logger = logging.getLogger(__name__)

MAX_TAGS = 20

LOAD_BALANCER_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "name": {"type": "string", "minLength": 1, "maxLength": 80},
        "address_type": {"enum": [t.value for t in AddressType]},
        "address_ip_version": {"enum": [v.value for v in IpVersion]},
        "vswitch_id": {"type": "string", "minLength": 1},
        "master_zone_id": {"type": "string", "minLength": 1},
        "slave_zone_id": {"type": "string", "minLength": 1},
        "delete_protection": {"enum": ["on", "off"]},
        "resource_group_id": {"type": "string", "minLength": 1},
        "tags": {
            "type": "object",
            "maxProperties": MAX_TAGS,
            "propertyNames": {"minLength": 1, "maxLength": 64},
            "additionalProperties": {"type": "string", "maxLength": 128},
        },
    },
}


def validate_spec_against_schema(
    spec: Dict[str, Any], schema: Dict[str, Any]
) -> Tuple[bool, Optional[str]]:
    """
    Validate declared values against a JSON Schema.

    Args:
        spec: The declared field values to validate
        schema: The JSON Schema to validate against

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        validator = Draft7Validator(schema)
        errors = sorted(validator.iter_errors(spec), key=lambda e: list(e.path))

        if not errors:
            return True, None

        # Collect all validation errors
        error_messages = []
        for error in errors:
            path = ".".join(str(p) for p in error.absolute_path) or "(root)"
            error_messages.append(f"{path}: {error.message}")

        return False, "; ".join(error_messages)

    except ValidationError as e:
        return False, f"Validation error: {str(e)}"
    except Exception as e:
        logger.error(f"Unexpected error during validation: {e}")
        return False, f"Validation failed: {str(e)}"


def validate_network_placement(values: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Check the address type against network placement and IP version.

    A vSwitch places the load balancer in a VPC, which only the intranet
    address type supports. IPv6 addresses are only offered on the internet.
    """
    address_type = values.get("address_type")
    if values.get("vswitch_id") and address_type == AddressType.INTERNET.value:
        return False, "vswitch_id can only be set when address_type is 'intranet'"

    if (
        values.get("address_ip_version") == IpVersion.IPV6.value
        and address_type == AddressType.INTRANET.value
    ):
        return False, "address_ip_version 'ipv6' requires address_type 'internet'"

    if values.get("address_ip_version") == IpVersion.IPV6.value and values.get(
        "vswitch_id"
    ):
        return False, "address_ip_version 'ipv6' cannot be used with vswitch_id"

    return True, None


def validate_load_balancer_values(
    values: Dict[str, Any],
) -> Tuple[bool, Optional[str]]:
    """
    Validate resolved declared values (schema first, then joint constraints).

    Returns:
        Tuple of (is_valid, error_message)
    """
    is_valid, error = validate_spec_against_schema(values, LOAD_BALANCER_SCHEMA)
    if not is_valid:
        return is_valid, error
    return validate_network_placement(values)
