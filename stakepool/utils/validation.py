"""
Input Validation - Sanitization of amounts, percents and identifiers.

Provides validation for all external inputs to prevent:
- Negative or oversized (beyond u64) amounts
- Percent parameters above 100.00%
- Malformed validator identifiers and scenario files
"""

import re
from typing import Any, List, Optional, Tuple

# =============================================================================
# Constants
# =============================================================================

MAX_U64 = 2**64 - 1

# Percent parameters are expressed in hundredths of a percent
MAX_PERCENT = 10_000

MAX_ARRAY_LENGTH = 256
MAX_STRING_LENGTH = 1024

# Validator identifiers are hex addresses, 1 to 32 bytes
VALIDATOR_ID_PATTERN = r"^0x[0-9a-fA-F]{2,64}$"

SCENARIO_OPS = (
    "stake",
    "unstake",
    "burn_ticket",
    "advance_epoch",
    "advance_time",
    "distribute_rewards",
    "update_rewards",
    "update_validators",
    "rebalance",
    "collect_fee",
    "set_pause",
)


# =============================================================================
# Validation Functions
# =============================================================================


def validate_integer(
    value: Any,
    name: str,
    min_val: int = 0,
    max_val: int = MAX_U64,
) -> Tuple[bool, str]:
    """
    Validate integer within bounds.

    Args:
        value: Value to validate
        name: Field name for errors
        min_val: Minimum allowed value
        max_val: Maximum allowed value

    Returns:
        (is_valid, error_message)
    """
    # bool is an int subclass but never a valid amount
    if not isinstance(value, int) or isinstance(value, bool):
        return False, f"{name} must be int, got {type(value).__name__}"

    if value < min_val:
        return False, f"{name} must be >= {min_val}, got {value}"

    if value > max_val:
        return False, f"{name} must be <= {max_val}, got {value}"

    return True, ""


def validate_amount(amount: Any, name: str = "amount") -> Tuple[bool, str]:
    """Validate an asset or share amount."""
    return validate_integer(amount, name, 0, MAX_U64)


def validate_epoch(epoch: Any) -> Tuple[bool, str]:
    """Validate an epoch number."""
    return validate_integer(epoch, "epoch", 0, MAX_U64)


def validate_percent(value: Any, name: str = "percent") -> Tuple[bool, str]:
    """Validate a percent parameter (hundredths of a percent)."""
    return validate_integer(value, name, 0, MAX_PERCENT)


def validate_array(
    data: Any,
    name: str,
    max_length: int = MAX_ARRAY_LENGTH,
) -> Tuple[bool, str]:
    """
    Validate array/list input.

    Args:
        data: Data to validate
        name: Field name for errors
        max_length: Maximum allowed length

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(data, (list, tuple)):
        return False, f"{name} must be list/tuple, got {type(data).__name__}"

    if len(data) > max_length:
        return False, f"{name} exceeds max length {max_length}, got {len(data)}"

    return True, ""


def validate_string(
    value: Any,
    name: str,
    max_length: int = MAX_STRING_LENGTH,
    pattern: Optional[str] = None,
) -> Tuple[bool, str]:
    """
    Validate string input.

    Args:
        value: Value to validate
        name: Field name for errors
        max_length: Maximum string length
        pattern: Optional regex pattern

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(value, str):
        return False, f"{name} must be str, got {type(value).__name__}"

    if len(value) > max_length:
        return False, f"{name} exceeds max length {max_length}"

    if pattern and not re.match(pattern, value):
        return False, f"{name} does not match required pattern"

    return True, ""


def validate_validator_id(value: Any) -> Tuple[bool, str]:
    """Validate a validator identifier (0x-prefixed hex)."""
    return validate_string(value, "validator", pattern=VALIDATOR_ID_PATTERN)


def validate_validator_batch(
    validators: Any,
    priorities: Any,
) -> Tuple[bool, str]:
    """Validate the element types of a priority update batch."""
    for name, data in (("validators", validators), ("priorities", priorities)):
        valid, err = validate_array(data, name)
        if not valid:
            return False, err

    for validator in validators:
        valid, err = validate_validator_id(validator)
        if not valid:
            return False, err

    for priority in priorities:
        valid, err = validate_integer(priority, "priority")
        if not valid:
            return False, err

    return True, ""


# =============================================================================
# Composite Validators
# =============================================================================


def validate_scenario(data: Any) -> Tuple[bool, str]:
    """Validate a simulation scenario document."""
    if not isinstance(data, dict):
        return False, "Scenario must be dict"

    validators = data.get("validators", {})
    if not isinstance(validators, dict) or not validators:
        return False, "Scenario needs a non-empty 'validators' mapping"

    valid, err = validate_validator_batch(list(validators), list(validators.values()))
    if not valid:
        return False, err

    steps = data.get("steps", [])
    valid, err = validate_array(steps, "steps", max_length=10_000)
    if not valid:
        return False, err

    for index, step in enumerate(steps):
        valid, err = validate_scenario_step(step)
        if not valid:
            return False, f"Step {index}: {err}"

    return True, ""


def validate_scenario_step(step: Any) -> Tuple[bool, str]:
    """Validate one scenario step."""
    if not isinstance(step, dict):
        return False, "Step must be dict"

    op = step.get("op")
    if op not in SCENARIO_OPS:
        return False, f"Unknown op: {op}"

    for field in ("amount", "epochs", "ms", "total"):
        if field in step:
            valid, err = validate_amount(step[field], field)
            if not valid:
                return False, err

    if "validator" in step:
        valid, err = validate_validator_id(step["validator"])
        if not valid:
            return False, err

    return True, ""


def require(check: Tuple[bool, str], error_cls: type = ValueError) -> None:
    """Raise error_cls with the validation message if check failed."""
    valid, err = check
    if not valid:
        raise error_cls(err)


# =============================================================================
# Module Exports
# =============================================================================

__all__ = [
    "validate_integer",
    "validate_amount",
    "validate_epoch",
    "validate_percent",
    "validate_array",
    "validate_string",
    "validate_validator_id",
    "validate_validator_batch",
    "validate_scenario",
    "validate_scenario_step",
    "require",
    "MAX_U64",
    "MAX_PERCENT",
    "SCENARIO_OPS",
]
