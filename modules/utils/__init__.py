"""Utility modules for gceweb.

This package contains utility modules for resource naming and Terraform
variable handling.
"""

from .string_utils import is_valid_resource_name, join_name, sanitize_resource_name
from .terraform_utils import coerce_bool, coerce_int, coerce_list, getvar, tfvar_read

__all__ = [
    # String utilities
    "is_valid_resource_name",
    "join_name",
    "sanitize_resource_name",
    # Terraform utilities
    "getvar",
    "tfvar_read",
    "coerce_bool",
    "coerce_int",
    "coerce_list",
]
