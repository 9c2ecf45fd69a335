"""Configuration management for the deployment manifest."""
import os
import logging
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load environment variables
load_dotenv()

STORE_BACKENDS = ("firestore", "dynamodb", "memory")


class Config:
    """Application configuration."""

    DEPLOYABLE_TABLE = os.getenv("DEPLOYABLE_TABLE", "deployable")
    DEPLOYED_TABLE = os.getenv("DEPLOYED_TABLE", "deployed")
    STORE_BACKEND = os.getenv("STORE_BACKEND", "firestore").lower()
    GOOGLE_CLOUD_PROJECT = os.getenv("GOOGLE_CLOUD_PROJECT") or os.getenv("GCP_PROJECT")
    AWS_REGION = os.getenv("AWS_REGION", "us-east-1")
    DYNAMODB_ENDPOINT_URL = os.getenv("DYNAMODB_ENDPOINT_URL")
    MANIFEST_API_SECRET = os.getenv("MANIFEST_API_SECRET")
    PORT = int(os.getenv("PORT", "8000"))
    DEBUG = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    @classmethod
    def validate(cls) -> bool:
        """Validate that required configuration is present."""
        valid = True
        if cls.STORE_BACKEND not in STORE_BACKENDS:
            logger.warning(
                f"Unknown STORE_BACKEND {cls.STORE_BACKEND!r}; expected one of {', '.join(STORE_BACKENDS)}"
            )
            valid = False
        if not cls.MANIFEST_API_SECRET:
            logger.warning("MANIFEST_API_SECRET is not set. Mutating API routes will reject every request.")
            valid = False
        return valid
