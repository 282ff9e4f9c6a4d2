from .user import Company, Role, User
from .process import Process
from .timesheet import TimesheetRecord, TimesheetRecordItem, ApprovalHistory, ItemModificationHistory
from .recycle_bin import RecycleBinEntry

__all__ = [
    "Company", "Role", "User", "Process",
    "TimesheetRecord", "TimesheetRecordItem", "ApprovalHistory", "ItemModificationHistory",
    "RecycleBinEntry",
]
