"""Data models for Droplet Pilot."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional


LATEST_TAG = "latest"
PREVIOUS_TAG = "previous"
PROTECTED_TAGS = frozenset({LATEST_TAG, PREVIOUS_TAG})

STAGING_SUFFIX = "-new"


class LogLevel(Enum):
    """Logging level enumeration."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ContainerRole(Enum):
    """Logical identity a container holds during a deployment."""
    PRODUCTION = "production"
    STAGING = "staging"


class HealthState(Enum):
    """Health status as reported by the container runtime."""
    STARTING = "starting"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"

    @classmethod
    def from_docker(cls, status: Optional[str]) -> "HealthState":
        """Map a Docker ``State.Health.Status`` value to a HealthState."""
        if not status:
            return cls.STARTING
        try:
            return cls(status.lower())
        except ValueError:
            return cls.UNKNOWN


class DeploymentStage(Enum):
    """States of the deployment state machine, in order."""
    INIT = "init"
    CONNECTIVITY_CHECKED = "connectivity_checked"
    AUTHENTICATED = "authenticated"
    LATEST_PULLED = "latest_pulled"
    TEMP_CLEANED = "temp_cleaned"
    PREVIOUS_SAVED = "previous_saved"
    STAGING_STARTED = "staging_started"
    STAGING_HEALTHY = "staging_healthy"
    SWITCHING = "switching"
    PRODUCTION_STARTED = "production_started"
    PRODUCTION_HEALTHY = "production_healthy"
    ROLLBACK = "rollback"
    HOUSEKEEPING = "housekeeping"
    COMPLETE = "complete"


@dataclass(frozen=True)
class SSLConfig:
    """Validated SSL material mounted into the application container."""
    domain: str
    cert_path: str
    key_path: str


@dataclass(frozen=True)
class DeploymentConfig:
    """Deployment configuration, built once at startup."""
    registry: str
    access_token: str
    container_name: str
    health_check_cmd: str = "curl -f http://localhost/ || exit 1"
    ssl: Optional[SSLConfig] = None
    environment: Dict[str, str] = field(default_factory=dict)
    registry_host: str = "registry.digitalocean.com"
    api_url: str = "https://api.digitalocean.com/v2/registry"
    network: str = "do-internal-network"
    health_check_attempts: int = 10
    health_check_interval: float = 5

    @property
    def ssl_enabled(self) -> bool:
        return self.ssl is not None

    @property
    def repository(self) -> str:
        """Fully qualified image repository, without tag."""
        return f"{self.registry_host}/{self.registry}/{self.container_name}"

    @property
    def staging_name(self) -> str:
        return f"{self.container_name}{STAGING_SUFFIX}"

    def image_ref(self, tag: str = LATEST_TAG) -> str:
        return f"{self.repository}:{tag}"

    def container_for(self, role: ContainerRole) -> str:
        """Runtime container name for a logical role."""
        if role == ContainerRole.STAGING:
            return self.staging_name
        return self.container_name


@dataclass(frozen=True)
class HealthCheckSpec:
    """Health check executed by the container runtime itself."""
    command: str
    interval: int = 10
    timeout: int = 10
    retries: int = 5
    start_period: int = 30


@dataclass(frozen=True)
class ContainerSpec:
    """Declarative description of one container launch."""
    name: str
    image: str
    health_check: HealthCheckSpec
    network: str
    ports: Dict[str, int] = field(default_factory=dict)
    environment: Dict[str, str] = field(default_factory=dict)
    volumes: Dict[str, Dict[str, str]] = field(default_factory=dict)
    restart_policy: str = "unless-stopped"
    log_max_size: str = "10m"
    log_max_file: int = 3
    nofile_limit: int = 65536
    security_opt: tuple = ("no-new-privileges:true",)


@dataclass(frozen=True)
class RegistryTag:
    """A named image version in the remote registry."""
    name: str

    @property
    def protected(self) -> bool:
        return self.name in PROTECTED_TAGS


@dataclass
class HousekeepingReport:
    """What the housekeeping pass managed to clean up."""
    deleted_tags: int = 0
    failed_tags: int = 0
    listing_failed: bool = False
    space_reclaimed: int = 0


@dataclass
class DeploymentOutcome:
    """Result of one orchestration run. Logged, never persisted."""
    success: bool
    stage: DeploymentStage
    reason: str = ""
    guidance: str = ""
    downtime_seconds: Optional[float] = None
    rolled_back: bool = False
    housekeeping: Optional[HousekeepingReport] = None

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1
