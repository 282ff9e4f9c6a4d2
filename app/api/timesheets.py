"""
Timesheet submission API routes.
"""

from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User
from app.schemas.timesheet import TimesheetRecordCreate, TimesheetRecordResponse, WorkflowStatus
from app.schemas.recycle_bin import DeleteResult, BatchDeleteRequest, BatchDeleteResult, RecycleItemType
from app.services.timesheet_service import TimesheetService
from app.services.recycle_bin_service import RecycleBinService
from app.utils.auth import require_module
from app.utils.permissions import TIMESHEET_RECORD
from app.utils.validators import ValidationError

router = APIRouter(prefix="/timesheets", tags=["timesheets"])

@router.post("/", response_model=TimesheetRecordResponse, status_code=status.HTTP_201_CREATED, summary="提交工時記錄")
async def submit_timesheet(
    record_data: TimesheetRecordCreate,
    current_user: User = Depends(require_module(TIMESHEET_RECORD)),
    db: Session = Depends(get_db)
):
    """
    提交工時記錄。

    - 必須選擇班長與段長
    - 生產工時數量必須為正整數，非生產工時可為小數
    - 提交後狀態為 pending，等待班長審核
    """
    try:
        record = TimesheetService(db).submit_record(current_user, record_data)
        return TimesheetRecordResponse.model_validate(record)

    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to submit timesheet: {str(e)}"
        )

@router.get("/mine", response_model=List[TimesheetRecordResponse], summary="取得我的工時記錄")
async def get_my_timesheets(
    start_date: Optional[date] = Query(None, description="開始日期"),
    end_date: Optional[date] = Query(None, description="結束日期"),
    record_status: Optional[WorkflowStatus] = Query(None, alias="status", description="審核狀態篩選"),
    current_user: User = Depends(require_module(TIMESHEET_RECORD)),
    db: Session = Depends(get_db)
):
    try:
        records = TimesheetService(db).list_user_records(current_user, start_date, end_date, record_status)
        return [TimesheetRecordResponse.model_validate(record) for record in records]

    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to get timesheets: {str(e)}"
        )

@router.delete("/{record_id}", response_model=DeleteResult, summary="刪除工時記錄")
async def delete_timesheet(
    record_id: int,
    current_user: User = Depends(require_module(TIMESHEET_RECORD)),
    db: Session = Depends(get_db)
):
    """刪除工時記錄，記錄與全部明細會先放入回收站"""
    try:
        return RecycleBinService(db).delete_timesheet_record(record_id, current_user)

    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValueError as e:
        if "不存在" in str(e):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to delete timesheet: {str(e)}"
        )

@router.delete("/items/{item_id}", response_model=DeleteResult, summary="刪除工時明細")
async def delete_timesheet_item(
    item_id: int,
    current_user: User = Depends(require_module(TIMESHEET_RECORD)),
    db: Session = Depends(get_db)
):
    """
    刪除單筆工時明細。

    刪除的是記錄中的最後一筆明細時，空記錄也會一併放入回收站並刪除。
    """
    try:
        return RecycleBinService(db).delete_timesheet_item(item_id, current_user)

    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValueError as e:
        if "不存在" in str(e):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to delete timesheet item: {str(e)}"
        )

@router.post("/batch-delete", response_model=BatchDeleteResult, summary="批次刪除工時記錄")
async def batch_delete_timesheets(
    request: BatchDeleteRequest,
    current_user: User = Depends(require_module(TIMESHEET_RECORD)),
    db: Session = Depends(get_db)
):
    """依序刪除多筆工時記錄，失敗的記錄列在 errors 中"""
    try:
        return RecycleBinService(db).batch_delete(RecycleItemType.TIMESHEET_RECORD, request.ids, current_user)

    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to batch delete timesheets: {str(e)}"
        )
