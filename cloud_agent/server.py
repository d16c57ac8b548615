# cloud_agent/server.py
"""
Cloud Agent - HTTP front of the managed cloud simulator.

Serves the resource lifecycle (create / describe / update / delete) and
the user directory admin API that the provisioning engine's agent
backend talks to.
"""

import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from cloud_agent.simulator import ManagedCloudSimulator
from provisioning_engine.core.errors import ResourceNotFound, UserAlreadyExists, UserNotFound

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Cloud Agent",
    description="Simulated managed cloud control plane",
    version="1.0.0"
)

simulator = ManagedCloudSimulator(
    account_id=os.getenv("CLOUD_AGENT_ACCOUNT_ID", "000000000000"),
    region=os.getenv("CLOUD_AGENT_REGION", "us-east-1"),
    provisioning_polls=int(os.getenv("CLOUD_AGENT_PROVISIONING_POLLS", "1")),
    deletion_polls=int(os.getenv("CLOUD_AGENT_DELETION_POLLS", "1")),
)


# ============================================
# REQUEST/RESPONSE MODELS
# ============================================

class CreateResourceRequest(BaseModel):
    """Create resource request."""
    kind: str = Field(..., description="Resource kind (e.g. 'database')")
    logical_id: str = Field(..., description="Logical id inside the stack")
    properties: Dict[str, Any] = Field(default_factory=dict, description="Resolved properties")


class CreateResourceResponse(BaseModel):
    physical_id: str
    status: str


class UpdateResourceRequest(BaseModel):
    properties: Dict[str, Any] = Field(default_factory=dict)


class ResourceStatusResponse(BaseModel):
    """Resource status response."""
    physical_id: str
    status: str  # "creating", "updating", "ready", "failed", "deleting"
    outputs: Dict[str, Any] = Field(default_factory=dict)
    reason: Optional[str] = None


class CreateUserRequest(BaseModel):
    username: str
    attributes: Dict[str, str] = Field(default_factory=dict)
    temporary_password: str
    suppress_message: bool = True


class SetPasswordRequest(BaseModel):
    password: str
    permanent: bool = False


class UpdateAttributesRequest(BaseModel):
    attributes: Dict[str, str]


class UserResponse(BaseModel):
    username: str
    status: str
    attributes: Dict[str, str]


# ============================================
# RESOURCE ENDPOINTS
# ============================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.post("/resources", response_model=CreateResourceResponse, status_code=201)
async def create_resource(request: CreateResourceRequest):
    """Accept a create request; poll GET /resources/{id} for readiness."""
    logger.info(f"[{request.logical_id}] create {request.kind}")
    try:
        physical_id = simulator.create(request.kind, request.logical_id, request.properties)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return CreateResourceResponse(physical_id=physical_id, status="accepted")


@app.get("/resources", response_model=List[ResourceStatusResponse])
async def list_resources(kind: str):
    return [
        ResourceStatusResponse(
            physical_id=r.physical_id,
            status=r.status,
            outputs=r.outputs,
            reason=r.reason,
        )
        for r in simulator.resources_of_kind(kind)
    ]


@app.get("/resources/{physical_id}", response_model=ResourceStatusResponse)
async def describe_resource(physical_id: str):
    try:
        status = simulator.describe(physical_id)
    except ResourceNotFound:
        raise HTTPException(status_code=404, detail="Resource not found")

    return ResourceStatusResponse(
        physical_id=status.physical_id,
        status=status.status,
        outputs=status.outputs,
        reason=status.reason,
    )


@app.put("/resources/{physical_id}", status_code=202)
async def update_resource(physical_id: str, request: UpdateResourceRequest):
    try:
        simulator.update(physical_id, request.properties)
    except ResourceNotFound:
        raise HTTPException(status_code=404, detail="Resource not found")
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"status": "updating", "physical_id": physical_id}


@app.delete("/resources/{physical_id}", status_code=202)
async def delete_resource(physical_id: str):
    try:
        simulator.delete(physical_id)
    except ResourceNotFound:
        raise HTTPException(status_code=404, detail="Resource not found")
    return {"status": "deleting", "physical_id": physical_id}


# ============================================
# USER DIRECTORY ENDPOINTS
# ============================================

@app.get("/user-pools/{user_pool_id}/users/{username}", response_model=UserResponse)
async def get_user(user_pool_id: str, username: str):
    try:
        user = simulator.get_user(user_pool_id, username)
    except ResourceNotFound:
        raise HTTPException(status_code=404, detail="User pool not found")
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return UserResponse(**user)


@app.post("/user-pools/{user_pool_id}/users", status_code=201)
async def admin_create_user(user_pool_id: str, request: CreateUserRequest):
    try:
        simulator.admin_create_user(
            user_pool_id,
            request.username,
            request.attributes,
            request.temporary_password,
            suppress_message=request.suppress_message,
        )
    except ResourceNotFound:
        raise HTTPException(status_code=404, detail="User pool not found")
    except UserAlreadyExists as e:
        raise HTTPException(status_code=409, detail=str(e))

    logger.info(f"[{user_pool_id}] created user {request.username}")
    return {"status": "created", "username": request.username}


@app.delete("/user-pools/{user_pool_id}/users/{username}")
async def admin_delete_user(user_pool_id: str, username: str):
    try:
        simulator.admin_delete_user(user_pool_id, username)
    except (ResourceNotFound, UserNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"status": "deleted", "username": username}


@app.post("/user-pools/{user_pool_id}/users/{username}/password")
async def admin_set_user_password(user_pool_id: str, username: str, request: SetPasswordRequest):
    try:
        simulator.admin_set_user_password(
            user_pool_id, username, request.password, permanent=request.permanent
        )
    except (ResourceNotFound, UserNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"status": "updated", "username": username}


@app.post("/user-pools/{user_pool_id}/users/{username}/confirm")
async def admin_confirm_sign_up(user_pool_id: str, username: str):
    try:
        simulator.admin_confirm_sign_up(user_pool_id, username)
    except (ResourceNotFound, UserNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"status": "confirmed", "username": username}


@app.put("/user-pools/{user_pool_id}/users/{username}/attributes")
async def admin_update_user_attributes(user_pool_id: str, username: str, request: UpdateAttributesRequest):
    try:
        simulator.admin_update_user_attributes(user_pool_id, username, request.attributes)
    except (ResourceNotFound, UserNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"status": "updated", "username": username}


if __name__ == "__main__":
    import uvicorn

    logger.info("🚀 Starting Cloud Agent...")
    logger.info("📍 Listening on 0.0.0.0:9100")

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=9100,
        log_level="info"
    )
