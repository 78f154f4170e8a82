"""Stable constants shared across the gate orchestrator."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Branches.
DEFAULT_BRANCH: Final[str] = "master"
ORIGIN_REMOTE: Final[str] = "origin"
FETCH_HEAD: Final[str] = "FETCH_HEAD"

# The gate tooling project; it is part of every project set unless skipped.
DEFAULT_SELF_PROJECT: Final[str] = "openstack-infra/devstack-gate"

# Remote endpoints.
DEFAULT_ORIGIN_URL_TEMPLATE: Final[str] = "https://git.openstack.org/{{ project }}"
DEFAULT_QUEUE_URL: Final[str] = "http://zuul.openstack.org/p"
DEFAULT_QUEUE_FETCH_URL_TEMPLATE: Final[str] = "{{ url }}/{{ project }}"

# Retry and timeout budgets.
REMOTE_UPDATE_MAX_ATTEMPTS: Final[int] = 3
REMOTE_UPDATE_TIMEOUT_SECONDS: Final[float] = 300.0
KILL_GRACE_SECONDS: Final[float] = 60.0
RETRY_BACKOFF_MIN_SECONDS: Final[float] = 30.0
RETRY_BACKOFF_MAX_SECONDS: Final[float] = 90.0
GIT_COMMAND_TIMEOUT_SECONDS: Final[float] = 600.0
CLEAN_RETRY_DELAY_SECONDS: Final[float] = 1.0
TIMEOUT_EXIT_CODE: Final[int] = 124

# Workspace layout (relative to the base directory).
NEW_WORKSPACE_DIR: Final[PurePosixPath] = PurePosixPath("new")
OLD_WORKSPACE_DIR: Final[PurePosixPath] = PurePosixPath("old")
DEFAULT_BASE_DIR: Final[str] = "/opt/stack"
DEFAULT_WORKSPACE_CACHE: Final[str] = "~/workspace-cache"
# Gate script inside the self project tree, run when no gate hook is configured.
DEFAULT_GATE_SCRIPT: Final[str] = "devstack-vm-gate.sh"

CONFIG_SCHEMA_VERSION: Final[int] = 1

# Projects kept in lockstep, in checkout order.
DEFAULT_PROJECTS: Final[tuple[str, ...]] = (
    "openstack/tempest",
    "openstack/swift",
    "openstack/savanna-dashboard",
    "openstack/savanna",
    "openstack/requirements",
    "openstack/python-swiftclient",
    "openstack/python-savannaclient",
    "openstack/python-openstackclient",
    "openstack/python-novaclient",
    "openstack/python-neutronclient",
    "openstack/python-keystoneclient",
    "openstack/python-ironicclient",
    "openstack/python-heatclient",
    "openstack/python-glanceclient",
    "openstack/python-cinderclient",
    "openstack/python-ceilometerclient",
    "openstack/oslo.messaging",
    "openstack/oslo.config",
    "openstack/nova",
    "openstack/neutron",
    "openstack/keystone",
    "openstack/ironic",
    "openstack/horizon",
    "openstack/heat",
    "openstack/glance",
    "openstack/cinder",
    "openstack/ceilometer",
    "openstack-infra/pypi-mirror",
    "openstack-infra/jeepyb",
    "openstack-dev/pbr",
    "openstack-dev/grenade",
    "openstack-dev/devstack",
)

__all__ = [
    "CLEAN_RETRY_DELAY_SECONDS",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_BASE_DIR",
    "DEFAULT_BRANCH",
    "DEFAULT_GATE_SCRIPT",
    "DEFAULT_ORIGIN_URL_TEMPLATE",
    "DEFAULT_PROJECTS",
    "DEFAULT_QUEUE_FETCH_URL_TEMPLATE",
    "DEFAULT_QUEUE_URL",
    "DEFAULT_SELF_PROJECT",
    "DEFAULT_WORKSPACE_CACHE",
    "FETCH_HEAD",
    "GIT_COMMAND_TIMEOUT_SECONDS",
    "KILL_GRACE_SECONDS",
    "NEW_WORKSPACE_DIR",
    "OLD_WORKSPACE_DIR",
    "ORIGIN_REMOTE",
    "REMOTE_UPDATE_MAX_ATTEMPTS",
    "REMOTE_UPDATE_TIMEOUT_SECONDS",
    "RETRY_BACKOFF_MAX_SECONDS",
    "RETRY_BACKOFF_MIN_SECONDS",
    "TIMEOUT_EXIT_CODE",
]
