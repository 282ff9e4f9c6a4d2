from pydantic import BaseModel
from typing import Optional, List
from datetime import date, datetime
from enum import Enum


class InvalidTransitionError(ValueError):
    """審核狀態轉換錯誤"""
    pass


class WorkflowStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    SECTION_CHIEF_APPROVED = "section_chief_approved"
    REJECTED = "rejected"

    def try_advance(self) -> "WorkflowStatus":
        """取得審核通過後的下一個狀態"""
        next_status = _ADVANCE.get(self)
        if next_status is None:
            raise InvalidTransitionError(f"状态 {self.value} 无法再审核通过")
        return next_status

    def try_reject(self) -> "WorkflowStatus":
        if self not in (WorkflowStatus.PENDING, WorkflowStatus.APPROVED):
            raise InvalidTransitionError(f"状态 {self.value} 无法驳回")
        return WorkflowStatus.REJECTED


_ADVANCE = {
    WorkflowStatus.PENDING: WorkflowStatus.APPROVED,
    WorkflowStatus.APPROVED: WorkflowStatus.SECTION_CHIEF_APPROVED,
}


class ApproverType(str, Enum):
    SUPERVISOR = "supervisor"
    SECTION_CHIEF = "section_chief"

    @property
    def stage_status(self) -> WorkflowStatus:
        """該審核人負責處理的記錄狀態"""
        if self == ApproverType.SUPERVISOR:
            return WorkflowStatus.PENDING
        return WorkflowStatus.APPROVED


class ShiftType(str, Enum):
    DAY = "白班"
    NIGHT = "夜班"


# 提交

class TimesheetItemCreate(BaseModel):
    process_id: int
    quantity: float

class TimesheetRecordCreate(BaseModel):
    work_date: date
    shift_type: ShiftType = ShiftType.DAY
    supervisor_id: Optional[int] = None
    section_chief_id: Optional[int] = None
    items: List[TimesheetItemCreate] = []

class TimesheetItemResponse(BaseModel):
    id: int
    timesheet_record_id: int
    process_id: Optional[int] = None
    quantity: float
    unit: Optional[str] = None
    unit_price: Optional[float] = None
    amount: Optional[float] = None

    class Config:
        from_attributes = True

class TimesheetRecordResponse(BaseModel):
    id: int
    user_id: int
    work_date: date
    shift_type: Optional[str] = None
    supervisor_id: Optional[int] = None
    section_chief_id: Optional[int] = None
    status: WorkflowStatus
    user_name: Optional[str] = None
    supervisor_name: Optional[str] = None
    section_chief_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[TimesheetItemResponse] = []

    class Config:
        from_attributes = True


# 審核畫面檢視

class ItemView(BaseModel):
    id: int
    record_id: int
    process_id: Optional[int] = None
    work_type: str
    product: str
    process: str
    production_line: str
    quantity: float
    unit: str = "件"
    unit_price: float = 0
    amount: float = 0

class RecordView(BaseModel):
    id: int
    user_id: int
    user_name: str
    work_date: date
    shift_type: str
    status: WorkflowStatus
    supervisor_id: Optional[int] = None
    supervisor_name: str
    section_chief_id: Optional[int] = None
    section_chief_name: str
    production_line: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[ItemView] = []

class GroupedRecord(BaseModel):
    """同一員工同一工作日的彙總記錄，只存在於記憶體"""
    key: str
    user_id: int
    user_name: str
    work_date: date
    shift_type: str
    status: WorkflowStatus
    supervisor_id: Optional[int] = None
    supervisor_name: str
    section_chief_id: Optional[int] = None
    section_chief_name: str
    production_line: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    all_items: List[ItemView]
    total_items: int
    original_records: List[RecordView]

    @property
    def record_ids(self) -> List[int]:
        return [record.id for record in self.original_records]


# 審核請求

class EditResolution(str, Enum):
    SAVE = "save"
    DISCARD = "discard"

class PendingEdit(BaseModel):
    """尚未儲存的數量修改"""
    item_id: int
    quantity: float

class ApprovalRequest(BaseModel):
    comment: Optional[str] = ""
    pending_edit: Optional[PendingEdit] = None
    edit_resolution: Optional[EditResolution] = None

class GroupApprovalRequest(ApprovalRequest):
    record_ids: List[int]

class BatchApprovalRequest(ApprovalRequest):
    group_keys: List[str]

class RejectRequest(BaseModel):
    record_ids: List[int]
    comment: Optional[str] = ""

class QuantityUpdateRequest(BaseModel):
    quantity: float
    reason: Optional[str] = None

class GroupFailure(BaseModel):
    key: str
    error: str

class BatchApprovalResult(BaseModel):
    success_count: int = 0
    failed_count: int = 0
    approved_record_ids: List[int] = []
    failures: List[GroupFailure] = []

class ApprovalResult(BaseModel):
    status: WorkflowStatus
    record_ids: List[int]

class ConflictPromptResponse(BaseModel):
    """未儲存修改衝突提示"""
    message: str
    item_id: int
    original_quantity: float
    edit_quantity: float
    pending_action: str
    resolutions: List[EditResolution] = [EditResolution.SAVE, EditResolution.DISCARD]

class ApprovalHistoryResponse(BaseModel):
    id: int
    timesheet_record_id: int
    approver_id: Optional[int] = None
    approver_name: str
    approver_type: str
    action: str
    comment: Optional[str] = None
    created_at: Optional[datetime] = None

class ModificationHistoryResponse(BaseModel):
    id: int
    timesheet_record_item_id: int
    timesheet_record_id: int
    modifier_id: Optional[int] = None
    modifier_name: Optional[str] = None
    old_quantity: float
    new_quantity: float
    old_amount: float
    new_amount: float
    modification_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
