"""
Settings loader for gceweb.

Settings are layered, lowest precedence first:

    1. module defaults (modules/config/defaults.py)
    2. a YAML settings file (gceweb.yml)
    3. Terraform variable files (.tfvars, HCL or JSON)
    4. TF_VAR_<name> environment variables
    5. explicit overrides (CLI options)

Settings share their names with the declaration variables (instance_count is
accepted for count) so the same .tfvars file can drive both terraform and
gceweb.
"""

import logging
import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Iterable, List, Optional

import yaml

import modules.config.defaults as defaults
from modules.exceptions import ConfigurationError
from modules.models import (
    FirewallRule,
    ImageBuildSpec,
    ImageIdentifier,
    InstanceDeclaration,
    default_startup_script,
)
from modules.utils.terraform_utils import (
    coerce_bool,
    coerce_int,
    coerce_list,
    getvar,
    tfvar_read,
)

# Configure logging
logger = logging.getLogger(__name__)

# Terraform variable names -> settings field names
ALIASES = {"instance_count": "count"}


@dataclass
class Settings:
    """Resolved settings for one gceweb run."""

    project_id: str = ""
    zone: str = defaults.DEFAULT_ZONE
    machine_type: str = defaults.DEFAULT_MACHINE_TYPE
    count: int = defaults.DEFAULT_INSTANCE_COUNT
    name_prefix: str = defaults.DEFAULT_NAME_PREFIX
    network: str = defaults.DEFAULT_NETWORK
    tags: List[str] = field(default_factory=lambda: [defaults.WEB_TAG])
    image_name: str = ""
    use_latest_image: bool = False
    image_family: str = defaults.IMAGE_FAMILY
    image_project: str = ""
    image_name_prefix: str = defaults.IMAGE_NAME_PREFIX
    base_image_family: str = defaults.BASE_IMAGE_FAMILY
    base_image_project: str = defaults.BASE_IMAGE_PROJECT
    build_machine_type: str = defaults.DEFAULT_MACHINE_TYPE
    ssh_username: str = defaults.SSH_USERNAME
    packages: List[str] = field(default_factory=lambda: list(defaults.WEB_PACKAGES))
    service: str = defaults.WEB_SERVICE
    web_port: int = defaults.WEB_PORT
    firewall_rules: List[Dict[str, Any]] = field(
        default_factory=lambda: [dict(rule) for rule in defaults.FIREWALL_RULES]
    )
    startup_script: str = ""
    state_bucket: str = ""
    state_prefix: str = defaults.STATE_PREFIX

    def to_declaration(self, image_name: Optional[str] = None) -> InstanceDeclaration:
        """Build the instance declaration.

        Args:
            image_name: Freshly built image; forces explicit image selection

        Returns:
            InstanceDeclaration (not yet validated)
        """
        if image_name:
            image = ImageIdentifier(
                name=image_name,
                use_latest=False,
                family=self.image_family,
                project=self.image_project or None,
            )
        else:
            image = ImageIdentifier(
                name=self.image_name or None,
                use_latest=self.use_latest_image,
                family=self.image_family,
                project=self.image_project or None,
            )
        return InstanceDeclaration(
            project_id=self.project_id,
            image=image,
            count=self.count,
            machine_type=self.machine_type,
            zone=self.zone,
            name_prefix=self.name_prefix,
            network=self.network,
            tags=list(self.tags),
            startup_script=self.startup_script
            or default_startup_script(self.packages, self.service),
            firewall_rules=[FirewallRule.from_dict(r) for r in self.firewall_rules],
            web_port=self.web_port,
            state_bucket=self.state_bucket or None,
            state_prefix=self.state_prefix,
        )

    def to_image_spec(self, image_name: Optional[str] = None) -> ImageBuildSpec:
        return ImageBuildSpec(
            project_id=self.project_id,
            image_name=image_name or self.image_name or defaults.DEFAULT_IMAGE_NAME,
            image_family=self.image_family,
            zone=self.zone,
            machine_type=self.build_machine_type,
            base_image_family=self.base_image_family,
            base_image_project=self.base_image_project,
            ssh_username=self.ssh_username,
            packages=list(self.packages),
            service=self.service,
        )


FIELD_NAMES = [f.name for f in fields(Settings)]
INT_FIELDS = ("count", "web_port")
BOOL_FIELDS = ("use_latest_image",)
LIST_FIELDS = ("tags", "packages")


def _canonical(key: str) -> str:
    return ALIASES.get(key, key)


def _coerce(name: str, value: Any) -> Any:
    try:
        if name in INT_FIELDS:
            return coerce_int(value)
        if name in BOOL_FIELDS:
            return coerce_bool(value)
        if name in LIST_FIELDS:
            return coerce_list(value)
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid value for '{name}': {value!r}", context={"error": str(e)}
        ) from e
    if name == "firewall_rules":
        if not isinstance(value, list) or not all(
            isinstance(r, dict) and "name" in r for r in value
        ):
            raise ConfigurationError(
                "firewall_rules must be a list of mappings with a 'name' key"
            )
        return value
    if value is None:
        return ""
    return str(value)


def _merge(values: Dict[str, Any], layer: Dict[str, Any], source: str) -> None:
    for key, value in layer.items():
        name = _canonical(key)
        if name not in FIELD_NAMES:
            raise ConfigurationError(
                f"Unknown setting '{key}'", context={"source": source}
            )
        values[name] = _coerce(name, value)
        logger.debug(f"{name} set from {source}")


def read_settings_file(path: str) -> Dict[str, Any]:
    """Read a YAML settings file.

    Raises:
        ConfigurationError: If the file is missing, unreadable or not a mapping
    """
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(
            f"Settings file not found: {path}", context={"path": path}
        ) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Could not parse settings file: {path}", context={"error": str(e)}
        ) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Settings file must contain a mapping: {path}", context={"path": path}
        )
    return data


def _environment_layer() -> Dict[str, Any]:
    layer = {}
    names = FIELD_NAMES + list(ALIASES.keys())
    for name in names:
        if name == "firewall_rules":
            continue
        value = getvar(name, {}, default=None)
        if value is not None:
            layer[name] = value
    return layer


def load_settings(
    config_file: Optional[str] = None,
    varfiles: Iterable[str] = (),
    overrides: Optional[Dict[str, Any]] = None,
) -> Settings:
    """Resolve settings from every layer.

    Args:
        config_file: Optional YAML settings file. If omitted, ``gceweb.yml``
            in the current directory is used when present.
        varfiles: Terraform variable files, applied in order
        overrides: Highest precedence values; ``None`` entries are ignored

    Returns:
        Settings

    Raises:
        ConfigurationError: On unknown keys, bad values or unreadable files
    """
    values: Dict[str, Any] = {}

    if config_file is None and os.path.isfile(defaults.SETTINGS_FILE):
        config_file = defaults.SETTINGS_FILE
    if config_file:
        _merge(values, read_settings_file(config_file), config_file)

    for varfile in varfiles:
        try:
            layer = tfvar_read(varfile)
        except FileNotFoundError as e:
            raise ConfigurationError(str(e), context={"path": varfile}) from e
        _merge(values, layer, varfile)

    _merge(values, _environment_layer(), "environment")

    if overrides:
        _merge(
            values,
            {k: v for k, v in overrides.items() if v is not None},
            "overrides",
        )

    settings = Settings(**values)
    logger.info(f"Loaded settings for project '{settings.project_id}'")
    return settings
