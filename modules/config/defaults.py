# GCE Web Fleet Configuration for gceweb
# Provider: Google Cloud Platform (google provider, googlecompute packer plugin)
# Layout: Base image > Baked web image > Instances behind tag-scoped firewall rules

# Provider metadata
TERRAFORM_PROVIDER_SOURCE = "hashicorp/google"
PACKER_PLUGIN_SOURCE = "github.com/hashicorp/googlecompute"
PACKER_PLUGIN_VERSION = ">= 1.1.1"

# Instance declaration defaults
DEFAULT_ZONE = "us-central1-a"
DEFAULT_MACHINE_TYPE = "e2-micro"
DEFAULT_INSTANCE_COUNT = 1
DEFAULT_NAME_PREFIX = "web"
DEFAULT_NETWORK = "default"

# Image defaults
BASE_IMAGE_FAMILY = "debian-12"
BASE_IMAGE_PROJECT = "debian-cloud"
IMAGE_FAMILY = "apache-web"
IMAGE_NAME_PREFIX = "apache-web"
DEFAULT_IMAGE_NAME = "apache-web-image"
SSH_USERNAME = "packer"

# Web service baked into the image and started at boot
WEB_PACKAGES = ["apache2"]
WEB_SERVICE = "apache2"
WEB_PORT = 80
WEB_TAG = "http-server"
WORLD_CIDR = "0.0.0.0/0"

# Firewall rules declared alongside the instances. The http rule is mandatory.
FIREWALL_RULES = [
    {
        "name": "allow-http",
        "protocol": "tcp",
        "ports": [str(WEB_PORT)],
        "source_ranges": [WORLD_CIDR],
        "target_tags": [WEB_TAG],
    },
    {
        "name": "allow-ssh",
        "protocol": "tcp",
        "ports": ["22"],
        "source_ranges": [WORLD_CIDR],
        "target_tags": [WEB_TAG],
    },
]

# Boot-time script run on every instance, independent of what the image carries
STARTUP_SCRIPT = """#!/bin/bash
set -e

export DEBIAN_FRONTEND=noninteractive
apt-get update
apt-get install -y {packages}

systemctl enable --now {service} || service {service} start || true
"""

# Remote state
STATE_PREFIX = "gceweb/state"

# File names written into the working directory
PACKER_TEMPLATE_FILE = "image.pkr.json"
TERRAFORM_CONFIG_FILE = "main.tf.json"
TERRAFORM_VARS_FILE = "terraform.tfvars.json"
SETTINGS_FILE = "gceweb.yml"
DEPLOY_WORKFLOW_FILE = "deploy.yml"
TEARDOWN_WORKFLOW_FILE = "teardown.yml"
