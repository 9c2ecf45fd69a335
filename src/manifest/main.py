"""FastAPI application exposing the deployment manifest over HTTP."""
import json
import logging
from functools import lru_cache
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PayloadError

from recordstore import StoreError

from .auth import verify_request_signature
from .config import Config
from .errors import CorruptedStateError, InvariantViolation, ManifestError, ValidationError
from .factory import build_manifest_service
from .service import DeploymentManifest

# Configure logging
logging.basicConfig(level=Config.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Validate configuration
Config.validate()

# Initialize FastAPI app
app = FastAPI(title="Deployment Manifest Service")


class NewDeployableRequest(BaseModel):
    version: str
    deployables: List[str]
    actor: str


class DeploymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    version: str
    env: str
    deployables: List[str]
    actor: str
    deployed_to_prod: bool = Field(False, alias="deployedToProd")


class RejectionRequest(BaseModel):
    version: str
    actor: str
    deployables: List[str] = []


@lru_cache(maxsize=1)
def get_manifest_service() -> DeploymentManifest:
    """Build the service once per process from Config."""
    return build_manifest_service()


@app.exception_handler(ManifestError)
async def manifest_error_handler(request: Request, exc: ManifestError):
    if isinstance(exc, ValidationError):
        status_code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, (InvariantViolation, CorruptedStateError)):
        status_code = status.HTTP_409_CONFLICT
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    logger.warning(f"{request.url.path} failed: {exc}")
    return JSONResponse(status_code=status_code, content={"error": type(exc).__name__, "detail": str(exc)})


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error(f"{request.url.path} store failure: {exc}")
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


async def _signed_payload(request: Request, signature: Optional[str], model):
    """Verify the body signature, then parse it into ``model``."""
    body_bytes = await request.body()

    if not verify_request_signature(body_bytes, Config.MANIFEST_API_SECRET, signature):
        logger.warning("Request signature verification failed")
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload = json.loads(body_bytes)
    except json.JSONDecodeError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid JSON payload"
        )

    try:
        return model.model_validate(payload)
    except PayloadError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.errors())


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "store_backend": Config.STORE_BACKEND,
        "deployable_table": Config.DEPLOYABLE_TABLE,
        "deployed_table": Config.DEPLOYED_TABLE,
        "api_secret_configured": Config.MANIFEST_API_SECRET is not None,
    }


@app.get("/deployables")
async def list_deployables(
    version: str,
    deployables: str = "",
    service: DeploymentManifest = Depends(get_manifest_service),
):
    """Deployables for a version, or what is deployed to an environment."""
    names = [name for name in deployables.split(",") if name.strip()]
    pairs = await service.get_deployable_list(version, names)
    return {"records": pairs, "hasResults": bool(pairs)}


@app.post("/deployables")
async def add_deployables(
    request: Request,
    x_manifest_signature_256: str = Header(None, alias="X-Manifest-Signature-256"),
    service: DeploymentManifest = Depends(get_manifest_service),
):
    """Register a new version for one or more deployables."""
    body = await _signed_payload(request, x_manifest_signature_256, NewDeployableRequest)
    created = await service.add_new_deployable(body.version, body.deployables, body.actor)
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={"records": [record.to_item() for record in created]},
    )


@app.post("/deployments")
async def record_deployment(
    request: Request,
    x_manifest_signature_256: str = Header(None, alias="X-Manifest-Signature-256"),
    service: DeploymentManifest = Depends(get_manifest_service),
):
    """Record that a version was deployed to an environment."""
    body = await _signed_payload(request, x_manifest_signature_256, DeploymentRequest)
    logger.info(f"Deployment of {body.version} to {body.env} requested by {body.actor}")
    deployed = await service.mark_deployed(
        body.version,
        body.env,
        body.deployables,
        body.actor,
        deployed_to_prod=body.deployed_to_prod,
    )
    return {"records": [record.to_item() for record in deployed]}


@app.post("/rejections")
async def reject_deployables(
    request: Request,
    x_manifest_signature_256: str = Header(None, alias="X-Manifest-Signature-256"),
    service: DeploymentManifest = Depends(get_manifest_service),
):
    """Reject a version, or a subset of its deployables."""
    body = await _signed_payload(request, x_manifest_signature_256, RejectionRequest)
    rejected = await service.mark_rejected(body.version, body.actor, body.deployables)
    return {"records": [record.to_item() for record in rejected]}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "manifest.main:app",
        host="0.0.0.0",
        port=Config.PORT,
        log_level="info",
        reload=Config.DEBUG
    )
