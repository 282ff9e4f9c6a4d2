"""
Process (priced unit of work) management API routes, including Excel import.
"""

from typing import List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, status, Query, File, UploadFile, Response
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User
from app.schemas.process import ProcessCreate, ProcessUpdate, ProcessResponse, ImportResult, WorkCategory
from app.schemas.recycle_bin import DeleteResult
from app.services.process_service import ProcessService
from app.services.import_service import ImportService, build_import_template, TEMPLATE_FILENAME
from app.services.recycle_bin_service import RecycleBinService
from app.utils.auth import require_module
from app.utils.permissions import PROCESS_MANAGEMENT
from app.utils.validators import ValidationError

router = APIRouter(prefix="/processes", tags=["processes"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

def _process_error(e: Exception, action: str) -> HTTPException:
    if isinstance(e, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    if isinstance(e, PermissionError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(e, ValueError) and "不存在" in str(e):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}: {str(e)}"
    )

@router.get("/", response_model=List[ProcessResponse], summary="取得工序列表")
async def get_processes(
    company_id: Optional[int] = Query(None, description="公司ID篩選（僅超級管理員）"),
    production_line: Optional[str] = Query(None, description="生產線篩選"),
    production_category: Optional[WorkCategory] = Query(None, description="工時類型篩選"),
    include_inactive: bool = Query(False, description="是否包含已停用工序"),
    current_user: User = Depends(require_module(PROCESS_MANAGEMENT)),
    db: Session = Depends(get_db)
):
    try:
        processes = ProcessService(db).list_processes(
            current_user,
            company_id=company_id,
            production_line=production_line,
            production_category=production_category.value if production_category else None,
            include_inactive=include_inactive
        )
        return [ProcessResponse.model_validate(process) for process in processes]

    except Exception as e:
        raise _process_error(e, "get processes")

@router.post("/", response_model=ProcessResponse, status_code=status.HTTP_201_CREATED, summary="建立工序")
async def create_process(
    process_data: ProcessCreate,
    current_user: User = Depends(require_module(PROCESS_MANAGEMENT)),
    db: Session = Depends(get_db)
):
    """
    建立工序。

    同公司內 (生產線, 工時類型, 產品名稱, 產品工序) 不可與啟用中的工序重複。
    """
    try:
        process = ProcessService(db).create_process(process_data, current_user)
        return ProcessResponse.model_validate(process)

    except Exception as e:
        raise _process_error(e, "create process")

@router.put("/{process_id}", response_model=ProcessResponse, summary="更新工序")
async def update_process(
    process_id: int,
    update_data: ProcessUpdate,
    current_user: User = Depends(require_module(PROCESS_MANAGEMENT)),
    db: Session = Depends(get_db)
):
    try:
        process = ProcessService(db).update_process(process_id, update_data, current_user)
        return ProcessResponse.model_validate(process)

    except Exception as e:
        raise _process_error(e, "update process")

@router.post("/{process_id}/deactivate", response_model=ProcessResponse, summary="停用工序")
async def deactivate_process(
    process_id: int,
    current_user: User = Depends(require_module(PROCESS_MANAGEMENT)),
    db: Session = Depends(get_db)
):
    try:
        process = ProcessService(db).deactivate_process(process_id, current_user)
        return ProcessResponse.model_validate(process)

    except Exception as e:
        raise _process_error(e, "deactivate process")

@router.delete("/{process_id}", response_model=DeleteResult, summary="刪除工序")
async def delete_process(
    process_id: int,
    current_user: User = Depends(require_module(PROCESS_MANAGEMENT)),
    db: Session = Depends(get_db)
):
    """刪除工序並放入回收站；已被工時明細引用的工序請改為停用"""
    try:
        return RecycleBinService(db).delete_process(process_id, current_user)

    except ValueError as e:
        if "不存在" in str(e):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        raise _process_error(e, "delete process")

@router.post("/import", response_model=ImportResult, summary="匯入工序 Excel")
async def import_processes(
    file: UploadFile = File(..., description="工序 Excel 檔案 (.xlsx)"),
    current_user: User = Depends(require_module(PROCESS_MANAGEMENT)),
    db: Session = Depends(get_db)
):
    """
    從 Excel 匯入工序。

    標題列需包含：公司名称、生产线、工时类型、产品名称、产品工序、单价、生效年月。
    任何一列驗證失敗時整份檔案都不會寫入，錯誤列在 validation_errors。
    """
    try:
        content = await file.read()
        return ImportService(db).import_processes(content, file.filename or "", file.content_type, current_user)

    except Exception as e:
        raise _process_error(e, "import processes")

@router.get("/import/template", summary="下載工序匯入範本")
async def download_import_template(
    current_user: User = Depends(require_module(PROCESS_MANAGEMENT))
):
    """範本含必要標題列與一列範例，範例公司為目前用戶所屬公司"""
    company_name = current_user.company.name if current_user.company else None
    content = build_import_template(company_name)
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(TEMPLATE_FILENAME)}"}
    )
