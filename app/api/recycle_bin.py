"""
Recycle bin API routes: list, restore, purge and expiry cleanup.
"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User
from app.schemas.recycle_bin import (
    RecycleItemType,
    RecycleBinListResponse,
    RecycleBinStats,
    RestoreResult,
    BatchDeleteRequest,
    BatchDeleteResult
)
from app.services.recycle_bin_service import RecycleBinService
from app.utils.auth import require_module, get_current_admin_user
from app.utils.permissions import RECYCLE_BIN
from app.utils.validators import validate_pagination_params

router = APIRouter(prefix="/recycle-bin", tags=["recycle-bin"])

@router.get("/", response_model=RecycleBinListResponse, summary="取得回收站列表")
async def get_recycle_bin(
    item_type: Optional[RecycleItemType] = Query(None, description="項目類型篩選；timesheet_record 同時包含明細"),
    search: Optional[str] = Query(None, description="搜尋關鍵字（姓名、產品、工序等）"),
    start_date: Optional[date] = Query(None, description="刪除日期起"),
    end_date: Optional[date] = Query(None, description="刪除日期迄"),
    page: int = Query(1, ge=1, description="頁碼"),
    page_size: int = Query(20, ge=1, le=100, description="每頁筆數"),
    current_user: User = Depends(require_module(RECYCLE_BIN)),
    db: Session = Depends(get_db)
):
    """
    取得回收站項目。

    - 超級管理員可看到全部
    - 其他用戶只能看到自己公司或自己刪除的項目
    """
    try:
        if not validate_pagination_params(page, page_size):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid pagination parameters")

        result = RecycleBinService(db).list_entries(
            current_user,
            item_type=item_type,
            search=search,
            start_date=start_date,
            end_date=end_date,
            page=page,
            page_size=page_size
        )
        return RecycleBinListResponse(**result)

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to get recycle bin: {str(e)}"
        )

@router.get("/stats", response_model=RecycleBinStats, summary="回收站統計")
async def get_recycle_bin_stats(
    current_user: User = Depends(require_module(RECYCLE_BIN)),
    db: Session = Depends(get_db)
):
    try:
        return RecycleBinService(db).get_stats(current_user)

    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to get recycle bin stats: {str(e)}"
        )

@router.post("/{entry_id}/restore", response_model=RestoreResult, summary="恢復項目")
async def restore_entry(
    entry_id: int,
    current_user: User = Depends(require_module(RECYCLE_BIN)),
    db: Session = Depends(get_db)
):
    """
    從回收站恢復資料。

    - 恢復明細時，若父記錄已不存在會依快照重建
    - 恢復工序會重新啟用
    - entry_removal 表示回收站項目的移除方式
    """
    try:
        return RecycleBinService(db).restore(entry_id, current_user)

    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValueError as e:
        if "不存在" in str(e):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to restore item: {str(e)}"
        )

@router.delete("/{entry_id}", summary="永久刪除項目")
async def permanently_delete_entry(
    entry_id: int,
    current_user: User = Depends(require_module(RECYCLE_BIN)),
    db: Session = Depends(get_db)
):
    try:
        RecycleBinService(db).permanently_delete(entry_id, current_user)
        return {"message": "已永久删除"}

    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValueError as e:
        if "不存在" in str(e):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to delete item: {str(e)}"
        )

@router.post("/batch-delete", response_model=BatchDeleteResult, summary="批次永久刪除")
async def batch_permanently_delete(
    request: BatchDeleteRequest,
    current_user: User = Depends(require_module(RECYCLE_BIN)),
    db: Session = Depends(get_db)
):
    try:
        return RecycleBinService(db).batch_permanently_delete(request.ids, current_user)

    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to batch delete: {str(e)}"
        )

@router.post("/cleanup", summary="清理過期項目")
async def cleanup_expired(
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """手動執行過期清理（僅管理員）"""
    try:
        count = RecycleBinService(db).cleanup_expired()
        return {"deleted_count": count}

    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to clean up recycle bin: {str(e)}"
        )
