"""
DropletPilot - blue/green deployment of a registry-hosted container to a single host
"""

__version__ = "0.1.0"

from .models import DeploymentConfig, DeploymentOutcome, LogLevel
from .orchestrator import DeploymentOrchestrator
from .pilot import DropletPilot

__all__ = ["DropletPilot", "DeploymentOrchestrator", "DeploymentConfig", "DeploymentOutcome", "LogLevel", "__version__"]
