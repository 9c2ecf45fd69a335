"""Deployment manifest: deployable registration and deployment tracking."""

from .errors import (
    CorruptedStateError,
    InvariantViolation,
    ManifestError,
    ValidationError,
)
from .models import DeployableRecord, DeployedRecord, DeploymentStatus
from .service import DeploymentManifest

__all__ = [
    "CorruptedStateError",
    "InvariantViolation",
    "ManifestError",
    "ValidationError",
    "DeployableRecord",
    "DeployedRecord",
    "DeploymentStatus",
    "DeploymentManifest",
]
