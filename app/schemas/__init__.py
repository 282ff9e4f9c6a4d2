from .user import UserBase, UserCreate, UserUpdate, UserResponse, Token
from .process import ProcessBase, ProcessCreate, ProcessUpdate, ProcessResponse, ImportResult
from .timesheet import (
    WorkflowStatus, ApproverType, InvalidTransitionError,
    ItemView, RecordView, GroupedRecord,
    TimesheetRecordCreate, TimesheetRecordResponse
)
from .recycle_bin import RecycleItemType, RecycleBinEntryResponse, RecycleBinStats, RestoreResult

__all__ = [
    "UserBase", "UserCreate", "UserUpdate", "UserResponse", "Token",
    "ProcessBase", "ProcessCreate", "ProcessUpdate", "ProcessResponse", "ImportResult",
    "WorkflowStatus", "ApproverType", "InvalidTransitionError",
    "ItemView", "RecordView", "GroupedRecord",
    "TimesheetRecordCreate", "TimesheetRecordResponse",
    "RecycleItemType", "RecycleBinEntryResponse", "RecycleBinStats", "RestoreResult"
]
