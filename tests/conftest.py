"""
Shared fixtures: in-memory stand-ins for the Docker runtime and the registry.
"""

import logging
import re
from unittest.mock import MagicMock

import pytest

from dropletpilot.errors import ConnectivityError, FatalAuthError, PullFailed, PushFailed, StartFailed
from dropletpilot.models import DeploymentConfig, HealthState, RegistryTag, SSLConfig
from dropletpilot.monitoring import HealthMonitor
from dropletpilot.orchestrator import DeploymentOrchestrator


class FakeContainerManager:
    """Records container lifecycle calls against an in-memory host."""

    def __init__(self):
        self.containers = {}
        self.started_specs = []
        self.events = []
        self.health_runs = {}
        self.start_failures = set()
        self.undeletable = set()
        self.networks = set()

    def add_container(self, name, image, running=True):
        self.containers[name] = {"image": image, "running": running, "health": [HealthState.HEALTHY]}

    def plan_health(self, name, *runs):
        """Queue one list of observed states per future start of ``name``."""
        self.health_runs.setdefault(name, []).extend(list(run) for run in runs)

    def ensure_network(self, name):
        self.networks.add(name)

    def start_container(self, spec):
        self.events.append(("start", spec.name, spec.image))
        if spec.name in self.start_failures:
            raise StartFailed(f"Failed to start container {spec.name}", output="port is already allocated")
        runs = self.health_runs.get(spec.name) or [[HealthState.HEALTHY]]
        health = runs.pop(0)
        self.containers[spec.name] = {"image": spec.image, "running": True, "health": health}
        self.started_specs.append(spec)
        return MagicMock(name=spec.name)

    def stop_container(self, name, timeout=10):
        self.events.append(("stop", name))
        if name in self.containers:
            self.containers[name]["running"] = False
        return True

    def remove_container(self, name):
        self.events.append(("remove", name))
        if name in self.undeletable:
            return False
        self.containers.pop(name, None)
        return True

    def stop_and_remove_container(self, name):
        return self.stop_container(name) and self.remove_container(name)

    def is_running(self, name):
        return name in self.containers and self.containers[name]["running"]

    def inspect_health(self, name):
        container = self.containers.get(name)
        if container is None:
            return HealthState.UNKNOWN
        health = container["health"]
        return health.pop(0) if len(health) > 1 else health[0]

    def inspect_image(self, name):
        container = self.containers.get(name)
        return container["image"] if container else None

    def started_at(self, name):
        return None

    def list_containers_matching(self, pattern):
        regex = re.compile(pattern)
        return [name for name in self.containers if regex.fullmatch(name)]

    def container_logs(self, name, tail=100):
        return "application log line"

    def health_details(self, name):
        return "Health: unhealthy, Failing Streak: 5"

    def stop_calls(self, name):
        return [e for e in self.events if e[0] == "stop" and e[1] == name]


class FakeImageManager:
    def __init__(self):
        self.local = set()
        self.tagged = []
        self.tag_fails = False
        self.pruned = 0

    def image_exists(self, ref):
        return ref in self.local

    def tag_image(self, source, repository, tag):
        if self.tag_fails:
            return False
        self.tagged.append((source, f"{repository}:{tag}"))
        self.local.add(f"{repository}:{tag}")
        return True

    def prune_dangling_images(self):
        self.pruned += 1
        return 0

    def list_local_tags(self, repository):
        return sorted(ref for ref in self.local if ref.startswith(f"{repository}:"))


class FakeRegistryClient:
    def __init__(self, images):
        self.images = images
        self.reachable = True
        self.login_fails = False
        self.remote = {"latest"}
        self.pull_fails = set()
        self.push_fails = False
        self.calls = []
        self.pushed = []
        self.deleted = []
        self.delete_fails = set()
        self.tags = []

    def ensure_connectivity(self):
        self.calls.append("connectivity")
        if not self.reachable:
            raise ConnectivityError("Registry registry.example.com is unreachable")

    def login(self):
        self.calls.append("login")
        if self.login_fails:
            raise FatalAuthError("Failed to login")

    def pull_with_retry(self, ref):
        self.calls.append(("pull", ref))
        tag = ref.rsplit(":", 1)[1]
        if ref in self.pull_fails or tag not in self.remote:
            raise PullFailed(f"Pull {ref} failed after 3 attempts")
        self.images.local.add(ref)

    def push_with_retry(self, ref):
        self.calls.append(("push", ref))
        if self.push_fails:
            raise PushFailed(f"Push {ref} failed after 3 attempts")
        self.pushed.append(ref)
        self.remote.add(ref.rsplit(":", 1)[1])

    def list_tags(self, repository=None):
        return iter(RegistryTag(name) for name in self.tags)

    def delete_tag(self, tag, repository=None):
        if tag in self.delete_fails:
            return False
        self.deleted.append(tag)
        return True


@pytest.fixture
def logger():
    return logging.getLogger("DropletPilotTest")


@pytest.fixture
def console():
    return MagicMock()


@pytest.fixture
def config():
    return DeploymentConfig(
        registry="acme",
        access_token="secret-token",
        container_name="webapp",
        registry_host="registry.example.com",
        environment={"LOG_LEVEL": "INFO"},
    )


@pytest.fixture
def ssl_config(config):
    return DeploymentConfig(
        registry=config.registry,
        access_token=config.access_token,
        container_name=config.container_name,
        registry_host=config.registry_host,
        ssl=SSLConfig(domain="example.com", cert_path="/etc/ssl/cert.pem", key_path="/etc/ssl/key.pem"),
    )


@pytest.fixture
def runtime():
    return FakeContainerManager()


@pytest.fixture
def images():
    return FakeImageManager()


@pytest.fixture
def registry(images):
    return FakeRegistryClient(images)


@pytest.fixture
def sleep():
    return MagicMock()


@pytest.fixture
def make_orchestrator(runtime, images, registry, console, logger, sleep):
    """Build an orchestrator over the fakes for a given config."""
    def _make(deployment_config, clock=None):
        monitor = HealthMonitor(runtime, console, logger, sleep=sleep)
        kwargs = {"clock": clock} if clock is not None else {}
        return DeploymentOrchestrator(
            config=deployment_config,
            container_manager=runtime,
            image_manager=images,
            registry_client=registry,
            health_monitor=monitor,
            console=console,
            logger=logger,
            **kwargs,
        )
    return _make
