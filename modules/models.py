"""Declaration models for gceweb.

These dataclasses describe what gets handed to the external engines: the
image Packer should bake and the instances plus firewall rules Terraform
should converge on. Every ``validate()`` runs locally so that bad input is
rejected before any cloud call is attempted.
"""

import ipaddress
import re
from dataclasses import dataclass, field
from typing import List, Optional

import modules.config.defaults as defaults
from modules.exceptions import DeclarationValidationError
from modules.utils.string_utils import is_valid_resource_name

ZONE_PATTERN = re.compile(r"^[a-z]+-[a-z]+[0-9]+-[a-z]$")
PORT_PATTERN = re.compile(r"^[0-9]{1,5}(-[0-9]{1,5})?$")
FIREWALL_PROTOCOLS = ("tcp", "udp", "icmp", "all")
MAX_PORT = 65535


@dataclass
class ImageIdentifier:
    """Boot image selection: an explicit name or the latest image in a family."""

    name: Optional[str] = None
    use_latest: bool = False
    family: str = defaults.IMAGE_FAMILY
    project: Optional[str] = None

    @property
    def method(self) -> str:
        if self.use_latest:
            return f"latest image in family {self.family}"
        return "explicit image name"

    def validate(self) -> None:
        if not self.use_latest and not self.name:
            raise DeclarationValidationError(
                "Either use_latest_image must be true or image_name must be set",
                context={"use_latest_image": self.use_latest, "image_name": self.name},
            )
        if self.use_latest and not self.family:
            raise DeclarationValidationError(
                "use_latest_image requires an image family to resolve"
            )


@dataclass
class FirewallRule:
    """Ingress allow rule scoped to instances carrying one of ``target_tags``."""

    name: str
    protocol: str = "tcp"
    ports: List[str] = field(default_factory=list)
    source_ranges: List[str] = field(default_factory=lambda: [defaults.WORLD_CIDR])
    target_tags: List[str] = field(default_factory=lambda: [defaults.WEB_TAG])

    def validate(self) -> None:
        if not is_valid_resource_name(self.name):
            raise DeclarationValidationError(
                "Firewall rule name is not a valid resource name",
                context={"rule": self.name},
            )
        if self.protocol not in FIREWALL_PROTOCOLS:
            raise DeclarationValidationError(
                f"Unsupported firewall protocol '{self.protocol}'",
                context={"rule": self.name},
            )
        for port in self.ports:
            if not PORT_PATTERN.match(str(port)):
                raise DeclarationValidationError(
                    f"Invalid port '{port}'", context={"rule": self.name}
                )
            low, _, high = str(port).partition("-")
            if not 0 <= int(low) <= int(high or low) <= MAX_PORT:
                raise DeclarationValidationError(
                    f"Port range '{port}' is out of order or above {MAX_PORT}",
                    context={"rule": self.name},
                )
        if not self.source_ranges:
            raise DeclarationValidationError(
                "Firewall rule needs at least one source range",
                context={"rule": self.name},
            )
        for cidr in self.source_ranges:
            try:
                ipaddress.ip_network(cidr, strict=False)
            except ValueError as e:
                raise DeclarationValidationError(
                    f"Invalid source range '{cidr}'", context={"rule": self.name}
                ) from e

    def allows_world_tcp(self, port: int) -> bool:
        """True if this rule admits TCP ``port`` from any IPv4 source."""
        if self.protocol not in ("tcp", "all"):
            return False
        if defaults.WORLD_CIDR not in self.source_ranges:
            return False
        if self.protocol == "all" and not self.ports:
            return True
        for entry in self.ports:
            low, _, high = str(entry).partition("-")
            if int(low) <= port <= int(high or low):
                return True
        return False

    @classmethod
    def from_dict(cls, data: dict) -> "FirewallRule":
        return cls(
            name=data["name"],
            protocol=data.get("protocol", "tcp"),
            ports=[str(p) for p in data.get("ports", [])],
            source_ranges=list(data.get("source_ranges", [defaults.WORLD_CIDR])),
            target_tags=list(data.get("target_tags", [defaults.WEB_TAG])),
        )


def default_firewall_rules() -> List[FirewallRule]:
    return [FirewallRule.from_dict(rule) for rule in defaults.FIREWALL_RULES]


def default_startup_script(
    packages: Optional[List[str]] = None, service: str = defaults.WEB_SERVICE
) -> str:
    return defaults.STARTUP_SCRIPT.format(
        packages=" ".join(packages or defaults.WEB_PACKAGES), service=service
    )


@dataclass
class InstanceDeclaration:
    """Desired state for the web fleet: N instances plus their firewall rules."""

    project_id: str
    image: ImageIdentifier
    count: int = defaults.DEFAULT_INSTANCE_COUNT
    machine_type: str = defaults.DEFAULT_MACHINE_TYPE
    zone: str = defaults.DEFAULT_ZONE
    name_prefix: str = defaults.DEFAULT_NAME_PREFIX
    network: str = defaults.DEFAULT_NETWORK
    tags: List[str] = field(default_factory=lambda: [defaults.WEB_TAG])
    startup_script: str = field(default_factory=default_startup_script)
    firewall_rules: List[FirewallRule] = field(default_factory=default_firewall_rules)
    web_port: int = defaults.WEB_PORT
    state_bucket: Optional[str] = None
    state_prefix: str = defaults.STATE_PREFIX

    @property
    def region(self) -> str:
        return self.zone.rsplit("-", 1)[0]

    def validate(self) -> None:
        """Check every precondition that can be checked without the cloud API.

        Raises:
            DeclarationValidationError: On the first failing check
        """
        if isinstance(self.count, bool) or not isinstance(self.count, int):
            raise DeclarationValidationError(
                "Instance count must be an integer", context={"count": self.count}
            )
        if self.count < 1:
            raise DeclarationValidationError(
                "Instance count must be at least 1", context={"count": self.count}
            )
        if not self.project_id:
            raise DeclarationValidationError("A project id is required")
        if not self.machine_type:
            raise DeclarationValidationError("A machine type is required")
        if not ZONE_PATTERN.match(self.zone or ""):
            raise DeclarationValidationError(
                f"'{self.zone}' is not a valid zone name", context={"zone": self.zone}
            )
        # Instance names are <prefix>-<n>, leave room for the suffix
        if not is_valid_resource_name(self.name_prefix) or len(self.name_prefix) > 56:
            raise DeclarationValidationError(
                f"'{self.name_prefix}' is not a valid instance name prefix"
            )
        self.image.validate()

        names = set()
        for rule in self.firewall_rules:
            rule.validate()
            if rule.name in names:
                raise DeclarationValidationError(
                    f"Duplicate firewall rule '{rule.name}'"
                )
            names.add(rule.name)

        web_rules = [
            rule
            for rule in self.firewall_rules
            if rule.allows_world_tcp(self.web_port)
            and set(rule.target_tags) & set(self.tags)
        ]
        if not web_rules:
            raise DeclarationValidationError(
                f"No firewall rule allows tcp:{self.web_port} from "
                f"{defaults.WORLD_CIDR} to the instance tags",
                context={"tags": ",".join(self.tags)},
            )


@dataclass
class ImageBuildSpec:
    """Inputs for one Packer build of the web server image."""

    project_id: str
    image_name: str = defaults.DEFAULT_IMAGE_NAME
    image_family: str = defaults.IMAGE_FAMILY
    zone: str = defaults.DEFAULT_ZONE
    machine_type: str = defaults.DEFAULT_MACHINE_TYPE
    base_image_family: str = defaults.BASE_IMAGE_FAMILY
    base_image_project: str = defaults.BASE_IMAGE_PROJECT
    ssh_username: str = defaults.SSH_USERNAME
    packages: List[str] = field(default_factory=lambda: list(defaults.WEB_PACKAGES))
    service: str = defaults.WEB_SERVICE

    def provisioning_steps(self) -> List[str]:
        """Shell steps baked into the image, in execution order.

        The service is stopped at the end so the snapshot is taken with it
        idle; the instance startup script brings it back up.
        """
        apt = "sudo DEBIAN_FRONTEND=noninteractive apt-get"
        return [
            f"{apt} update",
            f"{apt} upgrade -y",
            f"{apt} install -y {' '.join(self.packages)}",
            f"sudo systemctl enable {self.service}",
            f"sudo systemctl stop {self.service}",
        ]

    def validate(self) -> None:
        if not self.project_id:
            raise DeclarationValidationError("A project id is required to build an image")
        if not is_valid_resource_name(self.image_name):
            raise DeclarationValidationError(
                f"'{self.image_name}' is not a valid image name",
                context={"image_name": self.image_name},
            )
        if self.image_family and not is_valid_resource_name(self.image_family):
            raise DeclarationValidationError(
                f"'{self.image_family}' is not a valid image family"
            )
        if not self.packages:
            raise DeclarationValidationError("At least one package must be installed")
        if not ZONE_PATTERN.match(self.zone or ""):
            raise DeclarationValidationError(f"'{self.zone}' is not a valid zone name")
