from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from provisioning_engine.api.container import get_provisioner, get_settings
from provisioning_engine.api.schemas.stack import (
    ApplyRequest,
    PlannedChangeResponse,
    ResourceRecordResponse,
    RunReportResponse,
    StackStatusResponse,
)
from provisioning_engine.core.errors import StackValidationError
from provisioning_engine.stacks.workspace import build_workspace_stack

router = APIRouter(prefix="/stacks", tags=["stacks"])


def _stack_for(name: str, config, certificate_arn: Optional[str] = None):
    if name != config.stack_name:
        raise HTTPException(status_code=404, detail=f"Unknown stack: {name}")
    if certificate_arn:
        config = config.model_copy(update={"certificate_arn": certificate_arn})
    return build_workspace_stack(config)


def _report_response(report) -> RunReportResponse:
    return RunReportResponse(
        stack_name=report.stack_name,
        operation=report.operation,
        status=report.status.value,
        created=report.created,
        updated=report.updated,
        unchanged=report.unchanged,
        deleted=report.deleted,
        rolled_back=report.rolled_back,
        failed_resource=report.failed_resource,
        error_message=report.error_message,
        blocked_chain=report.blocked_chain,
        blocked=report.blocked,
        outputs=report.outputs,
    )


@router.post("/{name}/apply", response_model=RunReportResponse)
def apply_stack(
    name: str,
    request: Optional[ApplyRequest] = None,
    provisioner=Depends(get_provisioner),
    config=Depends(get_settings),
):
    stack = _stack_for(name, config, request.certificate_arn if request else None)

    try:
        report = provisioner.apply(stack)
    except StackValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return _report_response(report)


@router.post("/{name}/destroy", response_model=RunReportResponse)
def destroy_stack(
    name: str,
    provisioner=Depends(get_provisioner),
    config=Depends(get_settings),
):
    stack = _stack_for(name, config)
    return _report_response(provisioner.destroy(stack))


@router.get("/{name}", response_model=StackStatusResponse)
def get_stack(
    name: str,
    provisioner=Depends(get_provisioner),
    config=Depends(get_settings),
):
    _stack_for(name, config)

    return StackStatusResponse(
        stack_name=name,
        resources=[
            ResourceRecordResponse(
                logical_id=r.logical_id,
                kind=r.kind.value,
                state=r.state.value,
                physical_id=r.physical_id,
                error_message=r.error_message,
                updated_at=r.updated_at,
            )
            for r in provisioner.status(name)
        ],
    )


@router.get("/{name}/plan", response_model=List[PlannedChangeResponse])
def plan_stack(
    name: str,
    provisioner=Depends(get_provisioner),
    config=Depends(get_settings),
):
    stack = _stack_for(name, config)

    try:
        changes = provisioner.plan(stack)
    except StackValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return [
        PlannedChangeResponse(
            logical_id=c.logical_id,
            kind=c.kind,
            action=c.action,
            wave=c.wave,
        )
        for c in changes
    ]
