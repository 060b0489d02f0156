"""Custom exception types for gceweb.

This module defines the exception hierarchy for gceweb errors. Library code
raises these; only the CLI layer catches them and turns them into exit codes.

Exception Hierarchy:
    GceWebError (base)
    ├── ConfigurationError - Settings file, tfvars or override problems
    ├── DeclarationValidationError - Precondition failures before any cloud call
    ├── ToolNotFoundError - packer/terraform binary missing from PATH
    └── ToolCommandError - External tool exited non-zero
        ├── ImageBuildError - packer init/validate/build failures
        └── TerraformCommandError - terraform init/plan/apply/destroy failures
"""

from typing import Any, Dict, List, Optional


class GceWebError(Exception):
    """Base exception for all gceweb-specific errors.

    Attributes:
        message: Human-readable error description
        context: Additional contextual information (e.g., variable names, paths)
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """Return formatted error message with context."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} (context: {context_str})"
        return self.message


class ConfigurationError(GceWebError):
    """Raised when settings cannot be loaded or coerced.

    Examples:
        - Unknown key in gceweb.yml
        - Non-integer instance_count in a tfvars file
        - Unreadable YAML
    """

    pass


class DeclarationValidationError(GceWebError):
    """Raised when a declaration fails validation before any tool is invoked.

    Examples:
        - instance count below 1
        - neither use_latest_image nor image_name set
        - firewall rule with an invalid CIDR source range
    """

    pass


class ToolNotFoundError(GceWebError):
    """Raised when a required command-line tool is not on PATH."""

    pass


class ToolCommandError(GceWebError):
    """Raised when an external tool exits with a non-zero status.

    Attributes:
        command: The argv that was executed
        returncode: Exit status of the tool
        output: Combined stdout/stderr, surfaced verbatim
    """

    def __init__(
        self,
        message: str,
        command: Optional[List[str]] = None,
        returncode: int = 1,
        output: str = "",
        context: Optional[Dict[str, Any]] = None,
    ):
        context = dict(context or {})
        context.setdefault("returncode", returncode)
        super().__init__(message, context)
        self.command = command or []
        self.returncode = returncode
        self.output = output


class ImageBuildError(ToolCommandError):
    """Raised when a packer step fails.

    Examples:
        - Provisioning step exits non-zero (apt-get install failure)
        - Template validation failure
        - Missing project permissions
    """

    pass


class TerraformCommandError(ToolCommandError):
    """Raised when a terraform step fails.

    Examples:
        - Declaration syntax or precondition failure
        - Quota, permission or name collision errors from the cloud API
        - Backend initialisation failure
    """

    pass
