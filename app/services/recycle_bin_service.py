"""
Recycle bin: snapshot-then-delete, restore, purge and expiry sweep.
"""

import logging
from datetime import date, datetime, time
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.config import settings
from app.models.user import User, Company
from app.models.process import Process
from app.models.timesheet import TimesheetRecord, TimesheetRecordItem, ItemModificationHistory
from app.models.recycle_bin import RecycleBinEntry
from app.schemas.recycle_bin import (
    RecycleItemType, DeleteResult, BatchDeleteResult, RestoreResult, RecycleBinStats
)
from app.utils.datetime_utils import (
    utc_now, ensure_utc, expiry_from, format_datetime, format_relative_time, is_expired, remaining_days
)
from app.utils.permissions import is_super_admin, is_admin, has_permission, PROCESS_MANAGEMENT
from app.utils.validators import to_decimal

logger = logging.getLogger(__name__)

ORIGINAL_TABLES = {
    RecycleItemType.TIMESHEET_RECORD: "timesheet_records",
    RecycleItemType.TIMESHEET_RECORD_ITEM: "timesheet_record_items",
    RecycleItemType.PROCESS: "processes",
}

SEARCH_FIELDS = (
    "name", "description", "product_name", "product_process", "production_line",
    "user_name", "employee_name", "process_name", "process_number",
)

PROCESS_DISPLAY_DEFAULTS = {
    "company_name": "未知公司",
    "production_line": "未知生产线",
    "production_category": "未知类型",
    "product_name": "未知产品",
    "product_process": "未知工序",
}

SYSTEM_RESTORER_NAME = "系统恢复"
CENT = Decimal("0.01")


def _json_value(value):
    """轉換為可存入 JSON 欄位的值"""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _parse_date(value) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _parse_datetime(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def process_snapshot(process: Optional[Process]) -> Optional[dict]:
    if process is None:
        return None
    return {
        "id": process.id,
        "product_process": process.product_process,
        "product_name": process.product_name,
        "production_category": process.production_category,
        "production_line": process.production_line,
        "unit_price": _json_value(process.unit_price),
        "unit": process.unit,
    }


def _item_columns(item: TimesheetRecordItem) -> dict:
    return {
        "id": item.id,
        "timesheet_record_id": item.timesheet_record_id,
        "process_id": item.process_id,
        "quantity": _json_value(item.quantity),
        "unit": item.unit,
        "unit_price": _json_value(item.unit_price),
        "amount": _json_value(item.amount),
        "created_at": _json_value(item.created_at),
        "updated_at": _json_value(item.updated_at),
    }


def _display_name(denormalized: Optional[str], user: Optional[User]) -> Optional[str]:
    return denormalized or (user.name if user else None)


def record_snapshot(record: TimesheetRecord) -> dict:
    """工時記錄快照，含全部明細與工序資訊"""
    items = []
    for item in record.items:
        data = _item_columns(item)
        data["processes"] = process_snapshot(item.process)
        items.append(data)

    first_process = items[0]["processes"] if items and items[0]["processes"] else {}
    return {
        "id": record.id,
        "user_id": record.user_id,
        "company_id": record.company_id,
        "work_date": _json_value(record.work_date),
        "shift_type": record.shift_type,
        "supervisor_id": record.supervisor_id,
        "section_chief_id": record.section_chief_id,
        "status": record.status,
        "user_name": _display_name(record.user_name, record.user),
        "supervisor_name": _display_name(record.supervisor_name, record.supervisor),
        "section_chief_name": _display_name(record.section_chief_name, record.section_chief),
        "production_line": first_process.get("production_line"),
        "created_at": _json_value(record.created_at),
        "updated_at": _json_value(record.updated_at),
        "items": items,
    }


def item_snapshot(item: TimesheetRecordItem) -> dict:
    """工時明細快照，附帶所屬記錄與工序的顯示欄位"""
    record = item.record
    process = process_snapshot(item.process) or {}
    data = _item_columns(item)
    data.update({
        "processes": process or None,
        "product_name": process.get("product_name"),
        "product_process": process.get("product_process"),
        "production_line": process.get("production_line"),
        "production_category": process.get("production_category"),
        "work_date": _json_value(record.work_date),
        "shift_type": record.shift_type,
        "status": record.status,
        "user_id": record.user_id,
        "company_id": record.company_id,
        "supervisor_id": record.supervisor_id,
        "section_chief_id": record.section_chief_id,
        "user_name": _display_name(record.user_name, record.user),
        "supervisor_name": _display_name(record.supervisor_name, record.supervisor),
        "section_chief_name": _display_name(record.section_chief_name, record.section_chief),
    })
    return data


def process_full_snapshot(process: Process) -> dict:
    data = {
        "id": process.id,
        "company_id": process.company_id,
        "company_name": process.company.name if process.company else None,
        "production_line": process.production_line,
        "production_category": process.production_category,
        "product_name": process.product_name,
        "product_process": process.product_process,
        "unit_price": _json_value(process.unit_price),
        "unit": process.unit,
        "effective_date": _json_value(process.effective_date),
        "is_active": process.is_active,
        "created_at": _json_value(process.created_at),
        "updated_at": _json_value(process.updated_at),
    }
    return data


def matches_search(item_data: dict, search: str) -> bool:
    """在快照的顯示欄位中做不分大小寫的子字串搜尋"""
    needle = search.strip().lower()
    if not needle:
        return True

    candidates = [item_data]
    candidates.extend(child for child in item_data.get("items") or [] if isinstance(child, dict))
    candidates.extend(
        child["processes"] for child in list(candidates)
        if isinstance(child.get("processes"), dict)
    )

    for data in candidates:
        for field in SEARCH_FIELDS:
            value = data.get(field)
            if value is not None and needle in str(value).lower():
                return True
    return False


class RecycleBinService:
    """回收站業務邏輯服務"""

    def __init__(self, db: Session, privileged_session_factory: Optional[Callable[[], Session]] = None):
        self.db = db
        self.privileged_session_factory = privileged_session_factory

    # 權限

    def _check_record_permission(self, record: TimesheetRecord, user: User) -> None:
        if is_admin(user):
            return
        if user.id in (record.user_id, record.supervisor_id, record.section_chief_id):
            return
        raise PermissionError("您没有权限删除此工时记录")

    def _check_process_permission(self, process: Process, user: User) -> None:
        if is_super_admin(user):
            return
        if not (is_admin(user) or has_permission(user, PROCESS_MANAGEMENT)):
            raise PermissionError("您没有权限删除工序")
        if process.company_id != user.company_id:
            raise PermissionError("您只能删除自己公司的工序")

    def _check_entry_scope(self, entry: RecycleBinEntry, user: User) -> None:
        if is_super_admin(user):
            return
        if entry.company_id is not None and entry.company_id == user.company_id:
            return
        if user.id in (entry.deleted_by, entry.user_id):
            return
        raise PermissionError("您没有权限操作此回收站项目")

    # 快照後刪除

    def _store_entry(self, item_type: RecycleItemType, item_id: int, data: dict,
                     deleted_by: User, company_id: Optional[int], user_id: Optional[int]) -> RecycleBinEntry:
        now = utc_now()
        entry = RecycleBinEntry(
            item_type=item_type.value,
            item_id=item_id,
            item_data=data,
            deleted_by=deleted_by.id,
            deleted_at=now,
            original_table=ORIGINAL_TABLES[item_type],
            company_id=company_id,
            user_id=user_id,
            expires_at=expiry_from(now, settings.RECYCLE_BIN_RETENTION_DAYS),
            is_permanently_deleted=False,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def delete_timesheet_record(self, record_id: int, user: User) -> DeleteResult:
        """
        刪除工時記錄，刪除前先寫入回收站快照。

        快照與刪除在同一個交易內完成，刪除失敗時快照一併回滾。
        """
        record = self.db.query(TimesheetRecord).filter(TimesheetRecord.id == record_id).first()
        if not record:
            raise ValueError("工时记录不存在")
        self._check_record_permission(record, user)

        try:
            entry = self._store_entry(
                RecycleItemType.TIMESHEET_RECORD, record.id, record_snapshot(record),
                user, record.company_id, record.user_id
            )
            self.db.delete(record)
            self.db.flush()
            self.db.commit()

            logger.info(f"用戶 {user.id} 刪除工時記錄 {record_id}，回收站項目 {entry.id}")
            return DeleteResult(entry_id=entry.id, record_deleted=True, record_entry_id=entry.id)

        except Exception as e:
            self.db.rollback()
            raise ValueError(f"Failed to delete timesheet record: {str(e)}")

    def delete_timesheet_item(self, item_id: int, user: User) -> DeleteResult:
        """
        刪除工時明細；刪除的是記錄中最後一筆明細時，連同空記錄一起刪除。
        """
        item = self.db.query(TimesheetRecordItem).filter(TimesheetRecordItem.id == item_id).first()
        if not item:
            raise ValueError("工时明细不存在")
        record = item.record
        self._check_record_permission(record, user)

        remaining = len(record.items)

        try:
            entry = self._store_entry(
                RecycleItemType.TIMESHEET_RECORD_ITEM, item.id, item_snapshot(item),
                user, record.company_id, record.user_id
            )
            record.items.remove(item)
            self.db.flush()

            result = DeleteResult(entry_id=entry.id)

            if remaining == 1:
                record_entry = self._store_entry(
                    RecycleItemType.TIMESHEET_RECORD, record.id, record_snapshot(record),
                    user, record.company_id, record.user_id
                )
                self.db.delete(record)
                self.db.flush()
                result.record_deleted = True
                result.record_entry_id = record_entry.id

            self.db.commit()

            logger.info(
                f"用戶 {user.id} 刪除工時明細 {item_id}"
                + (f"，記錄 {record.id} 已無明細一併刪除" if result.record_deleted else "")
            )
            return result

        except Exception as e:
            self.db.rollback()
            raise ValueError(f"Failed to delete timesheet item: {str(e)}")

    def delete_process(self, process_id: int, user: User) -> DeleteResult:
        """刪除工序並放入回收站；仍被工時明細引用的工序不能刪除"""
        process = self.db.query(Process).filter(Process.id == process_id).first()
        if not process:
            raise ValueError("工序不存在")
        self._check_process_permission(process, user)

        in_use = self.db.query(TimesheetRecordItem).filter(
            TimesheetRecordItem.process_id == process_id
        ).count()
        if in_use:
            raise ValueError(f"工序已被 {in_use} 条工时明细引用，请改为停用")

        try:
            entry = self._store_entry(
                RecycleItemType.PROCESS, process.id, process_full_snapshot(process),
                user, process.company_id, None
            )
            self.db.delete(process)
            self.db.flush()
            self.db.commit()

            logger.info(f"用戶 {user.id} 刪除工序 {process_id}，回收站項目 {entry.id}")
            return DeleteResult(entry_id=entry.id)

        except Exception as e:
            self.db.rollback()
            raise ValueError(f"Failed to delete process: {str(e)}")

    def batch_delete(self, item_type: RecycleItemType, ids: List[int], user: User) -> BatchDeleteResult:
        """依序刪除多筆資料，失敗的項目記錄在錯誤列表"""
        handlers = {
            RecycleItemType.TIMESHEET_RECORD: self.delete_timesheet_record,
            RecycleItemType.TIMESHEET_RECORD_ITEM: self.delete_timesheet_item,
            RecycleItemType.PROCESS: self.delete_process,
        }
        handler = handlers[item_type]
        result = BatchDeleteResult()

        for item_id in ids:
            try:
                handler(item_id, user)
                result.deleted_count += 1
            except (ValueError, PermissionError) as e:
                logger.error(f"批次刪除 {item_type.value} {item_id} 失敗: {e}")
                result.errors.append(f"{item_id}: {str(e)}")

        return result

    # 恢復

    def get_entry(self, entry_id: int) -> RecycleBinEntry:
        entry = self.db.query(RecycleBinEntry).filter(
            RecycleBinEntry.id == entry_id,
            RecycleBinEntry.is_permanently_deleted == False
        ).first()
        if not entry:
            raise ValueError("回收站项目不存在或已被永久删除")
        return entry

    def _restore_reason(self, entry: RecycleBinEntry, restorer: User) -> str:
        deleter = self.db.query(User).filter(User.id == entry.deleted_by).first() if entry.deleted_by else None
        deleter_name = deleter.name if deleter else str(entry.deleted_by or "")[:8] or "未知用户"
        restorer_name = restorer.name or SYSTEM_RESTORER_NAME
        return (
            f"restore_from_recycle_bin: {restorer_name} 在 {format_datetime(utc_now(), settings.TIMEZONE)} 恢复；"
            f"原删除人：{deleter_name}，删除于 {format_datetime(entry.deleted_at, settings.TIMEZONE)}"
        )

    def _upsert_record(self, data: dict) -> TimesheetRecord:
        record = TimesheetRecord(
            id=data["id"],
            user_id=data["user_id"],
            company_id=data.get("company_id"),
            work_date=_parse_date(data["work_date"]),
            shift_type=data.get("shift_type") or "白班",
            supervisor_id=data.get("supervisor_id"),
            section_chief_id=data.get("section_chief_id"),
            status=data.get("status") or "pending",
            user_name=data.get("user_name"),
            supervisor_name=data.get("supervisor_name"),
            section_chief_name=data.get("section_chief_name"),
        )
        if data.get("created_at"):
            record.created_at = _parse_datetime(data["created_at"])
        record = self.db.merge(record)
        self.db.flush()
        return record

    def _upsert_item(self, data: dict, record_id: int, entry: RecycleBinEntry,
                     restorer: User, reason: str) -> TimesheetRecordItem:
        process_id = data.get("process_id")
        process = None
        if process_id is not None:
            process = self.db.query(Process).filter(Process.id == process_id).first()
            if process is None:
                raise ValueError(f"工序 {process_id} 已不存在，请先恢复工序")

        quantity = to_decimal(data.get("quantity"))
        unit_price = data.get("unit_price")
        if unit_price is None:
            snapshot_process = data.get("processes") or {}
            unit_price = snapshot_process.get("unit_price")
            if unit_price is None and process is not None:
                unit_price = process.unit_price
        unit_price = to_decimal(unit_price)

        amount = data.get("amount")
        amount = to_decimal(amount) if amount is not None else (quantity * unit_price).quantize(CENT)

        item = self.db.merge(TimesheetRecordItem(
            id=data["id"],
            timesheet_record_id=record_id,
            process_id=process_id,
            quantity=quantity,
            unit=data.get("unit") or "件",
            unit_price=unit_price,
            amount=amount,
        ))
        self.db.flush()

        self.db.add(ItemModificationHistory(
            timesheet_record_item_id=item.id,
            timesheet_record_id=record_id,
            modifier_id=restorer.id,
            modifier_name=restorer.name or SYSTEM_RESTORER_NAME,
            old_quantity=Decimal("0"),
            new_quantity=quantity,
            old_amount=Decimal("0"),
            new_amount=amount,
            modification_reason=reason,
            created_at=utc_now(),
        ))
        return item

    def _restore_record(self, entry: RecycleBinEntry, restorer: User) -> int:
        data = entry.item_data
        record = self._upsert_record(data)
        reason = self._restore_reason(entry, restorer)
        items = data.get("items") or []
        if not items:
            # 明細歷史需要明細 ID，空記錄只寫入日誌
            logger.info(f"恢復無明細的工時記錄 {record.id}: {reason}")
        for item_data in items:
            self._upsert_item(item_data, record.id, entry, restorer, reason)
        return len(items)

    def _restore_item(self, entry: RecycleBinEntry, restorer: User) -> int:
        data = entry.item_data
        record_id = data["timesheet_record_id"]

        parent = self.db.query(TimesheetRecord).filter(TimesheetRecord.id == record_id).first()
        if parent is None:
            # 父記錄已被刪除時依快照重建
            logger.info(f"恢復明細 {entry.item_id} 時重建工時記錄 {record_id}")
            self._upsert_record({
                "id": record_id,
                "user_id": data.get("user_id") or entry.user_id,
                "company_id": data.get("company_id") or entry.company_id,
                "work_date": data.get("work_date"),
                "shift_type": data.get("shift_type"),
                "supervisor_id": data.get("supervisor_id"),
                "section_chief_id": data.get("section_chief_id"),
                "status": data.get("status"),
                "user_name": data.get("user_name"),
                "supervisor_name": data.get("supervisor_name"),
                "section_chief_name": data.get("section_chief_name"),
            })

        self._upsert_item(data, record_id, entry, restorer, self._restore_reason(entry, restorer))
        return 1

    def _restore_process(self, entry: RecycleBinEntry) -> int:
        data = dict(entry.item_data)
        for key in ("created_at", "updated_at", "company_name", "companies", "processes"):
            data.pop(key, None)

        process = Process(
            id=data["id"],
            company_id=data["company_id"],
            production_line=data["production_line"],
            production_category=data["production_category"],
            product_name=data["product_name"],
            product_process=data["product_process"],
            unit_price=to_decimal(data["unit_price"]) if data.get("unit_price") is not None else None,
            unit=data.get("unit") or "件",
            effective_date=_parse_date(data.get("effective_date")),
            # 恢復即代表要重新啟用
            is_active=True,
        )
        self.db.merge(process)
        self.db.flush()
        return 1

    def restore(self, entry_id: int, restorer: User) -> RestoreResult:
        """
        從回收站恢復資料。

        Args:
            entry_id: 回收站項目 ID
            restorer: 執行恢復的用戶

        Returns:
            恢復結果，包含回收站項目的移除方式

        Raises:
            ValueError: 項目不存在或恢復失敗
            PermissionError: 不在可操作的範圍內
        """
        entry = self.get_entry(entry_id)
        self._check_entry_scope(entry, restorer)
        item_type = RecycleItemType(entry.item_type)
        # 移除項目後 entry 會被逐出工作階段
        item_id = entry.item_id

        try:
            if item_type == RecycleItemType.TIMESHEET_RECORD:
                restored = self._restore_record(entry, restorer)
            elif item_type == RecycleItemType.TIMESHEET_RECORD_ITEM:
                restored = self._restore_item(entry, restorer)
            else:
                restored = self._restore_process(entry)
            self.db.commit()

        except Exception as e:
            self.db.rollback()
            raise ValueError(f"Failed to restore item: {str(e)}")

        removal = self._remove_restored_entry(entry_id, restorer)
        logger.info(f"用戶 {restorer.id} 恢復回收站項目 {entry_id}（{item_type.value}），移除方式: {removal}")

        return RestoreResult(
            item_type=item_type,
            item_id=item_id,
            restored_items=restored,
            entry_removal=removal,
        )

    def _direct_delete(self, entry_id: int) -> None:
        self.db.query(RecycleBinEntry).filter(RecycleBinEntry.id == entry_id).delete(synchronize_session=False)
        self.db.commit()

    def _privileged_delete(self, entry_id: int) -> None:
        session = self.privileged_session_factory()
        try:
            session.query(RecycleBinEntry).filter(RecycleBinEntry.id == entry_id).delete(synchronize_session=False)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _flag_entry(self, entry_id: int, restorer: User) -> None:
        self.db.query(RecycleBinEntry).filter(RecycleBinEntry.id == entry_id).update({
            RecycleBinEntry.is_permanently_deleted: True,
            RecycleBinEntry.restored_at: utc_now(),
            RecycleBinEntry.restored_by: restorer.id,
        }, synchronize_session=False)
        self.db.commit()

    def _remove_restored_entry(self, entry_id: int, restorer: User) -> str:
        """移除已恢復的項目：直接刪除、特權連線刪除、標記為已處理"""
        try:
            self._direct_delete(entry_id)
            return "deleted"
        except Exception as e:
            self.db.rollback()
            logger.warning(f"直接刪除回收站項目 {entry_id} 失敗: {e}")

        if self.privileged_session_factory is not None:
            try:
                self._privileged_delete(entry_id)
                return "privileged_deleted"
            except Exception as e:
                logger.warning(f"特權連線刪除回收站項目 {entry_id} 失敗: {e}")

        try:
            self._flag_entry(entry_id, restorer)
            return "flagged"
        except Exception as e:
            self.db.rollback()
            logger.error(f"標記回收站項目 {entry_id} 失敗: {e}")
            raise ValueError(f"数据已恢复，但无法移除回收站项目: {str(e)}")

    # 永久刪除

    def permanently_delete(self, entry_id: int, user: User) -> None:
        entry = self.get_entry(entry_id)
        self._check_entry_scope(entry, user)

        try:
            self.db.delete(entry)
            self.db.commit()
            logger.info(f"用戶 {user.id} 永久刪除回收站項目 {entry_id}")
        except Exception as e:
            self.db.rollback()
            raise ValueError(f"Failed to permanently delete item: {str(e)}")

    def batch_permanently_delete(self, entry_ids: List[int], user: User) -> BatchDeleteResult:
        result = BatchDeleteResult()
        for entry_id in entry_ids:
            try:
                self.permanently_delete(entry_id, user)
                result.deleted_count += 1
            except (ValueError, PermissionError) as e:
                result.errors.append(f"{entry_id}: {str(e)}")
        return result

    def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        """
        清理已過期的回收站項目。

        Returns:
            刪除的項目數
        """
        now = ensure_utc(now) if now else utc_now()
        try:
            count = self.db.query(RecycleBinEntry).filter(
                RecycleBinEntry.is_permanently_deleted == False,
                RecycleBinEntry.expires_at < now
            ).delete(synchronize_session=False)
            self.db.commit()

            if count:
                logger.info(f"已清理 {count} 個過期的回收站項目")
            return count

        except Exception as e:
            self.db.rollback()
            raise ValueError(f"Failed to clean up expired items: {str(e)}")

    # 查詢

    def _scoped_query(self, user: User):
        query = self.db.query(RecycleBinEntry).filter(RecycleBinEntry.is_permanently_deleted == False)
        if not is_super_admin(user):
            query = query.filter(or_(
                RecycleBinEntry.company_id == user.company_id,
                RecycleBinEntry.deleted_by == user.id
            ))
        return query

    def _deleter_names(self, entries: List[RecycleBinEntry]) -> Dict[int, str]:
        ids = {entry.deleted_by for entry in entries if entry.deleted_by is not None}
        if not ids:
            return {}
        return {user.id: user.name for user in self.db.query(User).filter(User.id.in_(ids)).all()}

    def _company_names(self, entries: List[RecycleBinEntry]) -> Dict[int, str]:
        ids = {entry.company_id for entry in entries if entry.company_id is not None}
        if not ids:
            return {}
        return {c.id: c.name for c in self.db.query(Company).filter(Company.id.in_(ids)).all()}

    def list_entries(self, user: User, item_type: Optional[RecycleItemType] = None,
                     search: Optional[str] = None, start_date: Optional[date] = None,
                     end_date: Optional[date] = None, page: int = 1, page_size: int = 20) -> dict:
        """
        列出回收站項目。

        篩選與分頁在記憶體中對完整的篩選結果進行，total 為篩選後的總數。
        """
        query = self._scoped_query(user)

        if item_type == RecycleItemType.TIMESHEET_RECORD:
            query = query.filter(or_(
                RecycleBinEntry.item_type.in_([
                    RecycleItemType.TIMESHEET_RECORD.value,
                    RecycleItemType.TIMESHEET_RECORD_ITEM.value,
                ]),
                RecycleBinEntry.original_table.in_(["timesheet_records", "timesheet_record_items"])
            ))
        elif item_type is not None:
            query = query.filter(RecycleBinEntry.item_type == item_type.value)

        if start_date:
            query = query.filter(RecycleBinEntry.deleted_at >= ensure_utc(datetime.combine(start_date, time.min)))
        if end_date:
            query = query.filter(RecycleBinEntry.deleted_at <= ensure_utc(datetime.combine(end_date, time.max)))

        entries = query.order_by(RecycleBinEntry.deleted_at.desc(), RecycleBinEntry.id.desc()).all()

        if search and search.strip():
            entries = [entry for entry in entries if matches_search(entry.item_data or {}, search)]

        total = len(entries)
        start = (page - 1) * page_size
        page_entries = entries[start:start + page_size]

        return {
            "items": self._enrich(page_entries),
            "total": total,
            "page": page,
            "page_size": page_size,
        }

    def _enrich(self, entries: List[RecycleBinEntry]) -> List[dict]:
        now = utc_now()
        deleters = self._deleter_names(entries)
        companies = self._company_names(entries)
        result = []

        for entry in entries:
            item_data = dict(entry.item_data or {})
            if entry.item_type == RecycleItemType.PROCESS.value:
                if not item_data.get("company_name") and entry.company_id in companies:
                    item_data["company_name"] = companies[entry.company_id]
                for key, default in PROCESS_DISPLAY_DEFAULTS.items():
                    if not item_data.get(key):
                        item_data[key] = default

            deleted_by_name = deleters.get(entry.deleted_by) or str(entry.deleted_by or "")[:8]

            result.append({
                "id": entry.id,
                "item_type": entry.item_type,
                "item_id": entry.item_id,
                "item_data": item_data,
                "original_table": entry.original_table,
                "deleted_by": entry.deleted_by,
                "deleted_by_name": deleted_by_name,
                "deleted_at": entry.deleted_at,
                "deleted_time_text": format_relative_time(entry.deleted_at, now, settings.TIMEZONE),
                "company_id": entry.company_id,
                "user_id": entry.user_id,
                "expires_at": entry.expires_at,
                "is_expired": is_expired(entry.expires_at, now),
                "remaining_days": remaining_days(entry.expires_at, now),
            })

        return result

    def get_stats(self, user: User) -> RecycleBinStats:
        entries = self._scoped_query(user).all()
        now = utc_now()

        stats = RecycleBinStats(total_items=len(entries))
        for entry in entries:
            if is_expired(entry.expires_at, now):
                stats.expired_items += 1
            if entry.item_type == RecycleItemType.TIMESHEET_RECORD.value:
                stats.timesheet_records += 1
            elif entry.item_type == RecycleItemType.TIMESHEET_RECORD_ITEM.value:
                stats.timesheet_record_items += 1
            elif entry.item_type == RecycleItemType.PROCESS.value:
                stats.processes += 1
        return stats
