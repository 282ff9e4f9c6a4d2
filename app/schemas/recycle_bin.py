from pydantic import BaseModel
from typing import Optional, List, Any, Dict
from datetime import datetime
from enum import Enum

class RecycleItemType(str, Enum):
    TIMESHEET_RECORD = "timesheet_record"
    TIMESHEET_RECORD_ITEM = "timesheet_record_item"
    PROCESS = "process"

class RecycleBinEntryResponse(BaseModel):
    id: int
    item_type: RecycleItemType
    item_id: int
    item_data: Dict[str, Any]
    original_table: str
    deleted_by: Optional[int] = None
    deleted_by_name: str = ""
    deleted_at: datetime
    deleted_time_text: str = ""
    company_id: Optional[int] = None
    user_id: Optional[int] = None
    expires_at: datetime
    is_expired: bool = False
    remaining_days: int = 0

class RecycleBinListResponse(BaseModel):
    items: List[RecycleBinEntryResponse]
    total: int
    page: int
    page_size: int

class RecycleBinStats(BaseModel):
    total_items: int = 0
    expired_items: int = 0
    timesheet_records: int = 0
    timesheet_record_items: int = 0
    processes: int = 0

class DeleteResult(BaseModel):
    entry_id: Optional[int] = None
    record_deleted: bool = False
    record_entry_id: Optional[int] = None

class BatchDeleteRequest(BaseModel):
    ids: List[int]

class BatchDeleteResult(BaseModel):
    deleted_count: int = 0
    errors: List[str] = []

class RestoreResult(BaseModel):
    item_type: RecycleItemType
    item_id: int
    restored_items: int = 0
    entry_removal: str  # 'deleted', 'privileged_deleted', 'flagged'
