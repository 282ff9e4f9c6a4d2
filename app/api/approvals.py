"""
Two-stage approval API routes (supervisor, then section chief).

Approval endpoints accept the approver's unsaved quantity edit in
``pending_edit``. When that edit differs from the stored quantity the request
is answered with 409 and a conflict prompt; the client repeats the request
with ``edit_resolution`` set to ``save`` or ``discard``.
"""

from typing import Callable, List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User
from app.schemas.timesheet import (
    ApproverType,
    InvalidTransitionError,
    GroupedRecord,
    ApprovalRequest,
    GroupApprovalRequest,
    BatchApprovalRequest,
    RejectRequest,
    QuantityUpdateRequest,
    ApprovalResult,
    BatchApprovalResult,
    EditResolution,
    ConflictPromptResponse,
    TimesheetItemResponse,
    ApprovalHistoryResponse,
    ModificationHistoryResponse
)
from app.services.approval_service import ApprovalService
from app.services.edit_guard import EditSession, PendingAction, PendingActionKind, ConflictPrompt
from app.utils.auth import get_current_active_user
from app.utils.permissions import has_permission, SUPERVISOR_APPROVAL, SECTION_CHIEF_APPROVAL
from app.utils.validators import ValidationError

router = APIRouter(prefix="/approvals", tags=["approvals"])

STAGE_MODULES = {
    ApproverType.SUPERVISOR: SUPERVISOR_APPROVAL,
    ApproverType.SECTION_CHIEF: SECTION_CHIEF_APPROVAL,
}

async def get_stage_approver(
    stage: ApproverType,
    current_user: User = Depends(get_current_active_user)
) -> User:
    """確認用戶可使用該審核階段"""
    if not has_permission(current_user, STAGE_MODULES[stage]):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"No access to module: {STAGE_MODULES[stage]}"
        )
    return current_user

def _prompt_detail(prompt: ConflictPrompt) -> dict:
    return ConflictPromptResponse(
        message=prompt.message,
        item_id=prompt.item_id,
        original_quantity=float(prompt.original_quantity),
        edit_quantity=float(prompt.edit_quantity),
        pending_action=prompt.pending_action.kind.value
    ).model_dump(mode="json")

def _run_guarded(service: ApprovalService, approver: User, request: ApprovalRequest,
                 kind: PendingActionKind, run: Callable):
    """在未儲存修改守衛下執行審核動作"""
    if request.pending_edit is None:
        return run()

    item = service.get_item(request.pending_edit.item_id)
    session = EditSession(service, approver)
    session.start_edit(item.id, item.quantity)
    session.update_quantity(request.pending_edit.quantity)

    outcome = session.request(PendingAction(kind=kind, run=run))
    if not outcome.executed:
        if request.edit_resolution is None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=_prompt_detail(outcome.prompt))
        outcome = session.resolve(save=request.edit_resolution == EditResolution.SAVE)
    return outcome.result

def _approval_error(e: Exception, action: str) -> HTTPException:
    if isinstance(e, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    if isinstance(e, PermissionError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(e, InvalidTransitionError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, ValueError):
        if "不存在" in str(e):
            return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}: {str(e)}"
    )

@router.get("/{stage}/pending", response_model=List[GroupedRecord], summary="取得待審核記錄")
async def get_pending_records(
    stage: ApproverType,
    current_user: User = Depends(get_stage_approver),
    db: Session = Depends(get_db)
):
    """
    取得目前審核階段的待審記錄，依 (員工, 工作日期) 分組。

    - supervisor：狀態為 pending 且指派給自己的記錄
    - section_chief：狀態為 approved 且指派給自己的記錄
    - 超級管理員可看到全部
    """
    try:
        return ApprovalService(db).fetch_pending(current_user, stage)

    except Exception as e:
        raise _approval_error(e, "get pending records")

@router.post("/{stage}/records/{record_id}/approve", response_model=ApprovalResult, summary="審核通過單筆記錄")
async def approve_record(
    stage: ApproverType,
    record_id: int,
    request: ApprovalRequest,
    current_user: User = Depends(get_stage_approver),
    db: Session = Depends(get_db)
):
    try:
        service = ApprovalService(db)
        record = _run_guarded(
            service, current_user, request, PendingActionKind.SINGLE,
            lambda: service.approve_single(record_id, current_user, stage, request.comment)
        )
        return ApprovalResult(status=record.status, record_ids=[record.id])

    except HTTPException:
        raise
    except Exception as e:
        raise _approval_error(e, "approve record")

@router.post("/{stage}/groups/approve", response_model=ApprovalResult, summary="審核通過記錄組")
async def approve_group(
    stage: ApproverType,
    request: GroupApprovalRequest,
    current_user: User = Depends(get_stage_approver),
    db: Session = Depends(get_db)
):
    """審核通過同一員工同一天的全部記錄，全部成功或全部失敗"""
    try:
        service = ApprovalService(db)
        records = _run_guarded(
            service, current_user, request, PendingActionKind.GROUPED,
            lambda: service.approve_grouped(request.record_ids, current_user, stage, request.comment)
        )
        return ApprovalResult(status=records[0].status, record_ids=[record.id for record in records])

    except HTTPException:
        raise
    except Exception as e:
        raise _approval_error(e, "approve group")

@router.post("/{stage}/batch-approve", response_model=BatchApprovalResult, summary="批次審核")
async def batch_approve(
    stage: ApproverType,
    request: BatchApprovalRequest,
    current_user: User = Depends(get_stage_approver),
    db: Session = Depends(get_db)
):
    """
    依序審核多個記錄組。

    已成功的組不會回滾，失敗的組列在 failures 中。
    """
    try:
        service = ApprovalService(db)
        return _run_guarded(
            service, current_user, request, PendingActionKind.BATCH,
            lambda: service.approve_batch(request.group_keys, current_user, stage, request.comment)
        )

    except HTTPException:
        raise
    except Exception as e:
        raise _approval_error(e, "batch approve")

@router.post("/{stage}/reject", response_model=ApprovalResult, summary="駁回記錄")
async def reject_records(
    stage: ApproverType,
    request: RejectRequest,
    current_user: User = Depends(get_stage_approver),
    db: Session = Depends(get_db)
):
    try:
        records = ApprovalService(db).reject_records(request.record_ids, current_user, stage, request.comment)
        return ApprovalResult(status=records[0].status, record_ids=[record.id for record in records])

    except Exception as e:
        raise _approval_error(e, "reject records")

@router.patch("/items/{item_id}/quantity", response_model=TimesheetItemResponse, summary="修改明細數量")
async def update_item_quantity(
    item_id: int,
    request: QuantityUpdateRequest,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """
    修改工時明細數量，金額依單價重新計算並寫入修改歷史。

    - 生產工時：正整數
    - 非生產工時：大於等於 0，可為小數
    """
    try:
        item = ApprovalService(db).edit_quantity(item_id, request.quantity, current_user, request.reason)
        return TimesheetItemResponse.model_validate(item)

    except Exception as e:
        raise _approval_error(e, "update quantity")

@router.get("/records/{record_id}/history", response_model=List[ApprovalHistoryResponse], summary="取得審核歷史")
async def get_approval_history(
    record_id: int,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    try:
        return ApprovalService(db).get_approval_history(record_id)

    except Exception as e:
        raise _approval_error(e, "get approval history")

@router.get("/records/{record_id}/modifications", response_model=List[ModificationHistoryResponse], summary="取得數量修改歷史")
async def get_modification_history(
    record_id: int,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    try:
        entries = ApprovalService(db).get_modification_history(record_id)
        return [ModificationHistoryResponse.model_validate(entry) for entry in entries]

    except Exception as e:
        raise _approval_error(e, "get modification history")
