"""Terraform-specific utility functions for gceweb.

This module provides utilities for working with Terraform variables,
variable files, and the string values that arrive through ``TF_VAR_``
environment variables.
"""

import os
from typing import Any, Dict, List

TRUE_STRINGS = ("true", "1", "yes", "on")
FALSE_STRINGS = ("false", "0", "no", "off", "")


def getvar(
    variable_name: str, all_variables_dict: Dict[str, Any], default: Any = "NOTFOUND"
) -> Any:
    """Retrieve a Terraform variable value from environment or variables dictionary.

    ``TF_VAR_<name>`` takes precedence, matching how terraform itself resolves
    variables. Dictionary lookups fall back to a case-insensitive match.

    Args:
        variable_name: Name of the variable (without leading ``var.`` prefix)
        all_variables_dict: Dictionary containing variable values
        default: Value returned when the variable cannot be resolved

    Returns:
        Resolved variable value or ``default`` when not found.
    """
    if not variable_name:
        return default

    env_var = os.getenv(f"TF_VAR_{variable_name}")
    if env_var is not None:
        return env_var

    if isinstance(all_variables_dict, dict):
        if variable_name in all_variables_dict:
            return all_variables_dict[variable_name]
        for key in all_variables_dict:
            if key.lower() == variable_name.lower():
                return all_variables_dict[key]
    return default


def tfvar_read(filepath: str) -> Dict[str, Any]:
    """Read and parse a Terraform variable file (.tfvars).

    Args:
        filepath: Path to .tfvars file (HCL or JSON format)

    Returns:
        dict: Parsed variable definitions

    Raises:
        FileNotFoundError: If file does not exist
        ConfigurationError: If file cannot be parsed
    """
    import json
    from contextlib import suppress
    from pathlib import Path

    import hcl2

    from modules.exceptions import ConfigurationError

    if not Path(filepath).exists():
        raise FileNotFoundError(f"Variable file not found: {filepath}")

    # Try parsing as JSON first
    with suppress(json.JSONDecodeError):
        with open(filepath, "r") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Variable file must contain an object: {filepath}",
                context={"filepath": filepath},
            )
        return data

    try:
        with open(filepath, "r") as f:
            parsed_data = hcl2.load(f)
    except Exception as e:
        raise ConfigurationError(
            f"Failed to parse variable file: {filepath}",
            context={"error": str(e), "filepath": filepath},
        ) from e
    return {k: _flatten_hcl_value(v) for k, v in parsed_data.items()}


def _flatten_hcl_value(value: Any) -> Any:
    # Older hcl2 releases wrap scalars in single-element lists, newer ones keep
    # string quotes
    if isinstance(value, list) and len(value) == 1 and not isinstance(
        value[0], (list, dict)
    ):
        value = value[0]
    if isinstance(value, str) and len(value) >= 2 and value[0] == value[-1] == '"':
        value = value[1:-1]
    if isinstance(value, dict):
        return {k: _unquote(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_unquote(v) for v in value]
    return value


def _unquote(value: Any) -> Any:
    # Nested values keep their shape; only quotes are stripped
    if isinstance(value, str) and len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1]
    if isinstance(value, dict):
        return {k: _unquote(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_unquote(v) for v in value]
    return value


def coerce_bool(value: Any) -> bool:
    """Convert a tfvars/env value to a boolean.

    Raises:
        ValueError: If the value is not a recognisable boolean
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    text = str(value).strip().lower()
    if text in TRUE_STRINGS:
        return True
    if text in FALSE_STRINGS:
        return False
    raise ValueError(f"Cannot interpret {value!r} as a boolean")


def coerce_int(value: Any) -> int:
    """Convert a tfvars/env value to an integer.

    Raises:
        ValueError: If the value is not integral
    """
    if isinstance(value, bool):
        raise ValueError(f"Cannot interpret boolean {value!r} as an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"Cannot interpret {value!r} as an integer")
        return int(value)
    return int(str(value).strip())


def coerce_list(value: Any) -> List[str]:
    """Convert a comma separated string or sequence into a list of strings."""
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [str(v) for v in value]
