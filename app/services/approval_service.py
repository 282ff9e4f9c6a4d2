"""
Two-stage approval workflow for timesheet records.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session, selectinload

from app.models.user import User
from app.models.process import Process
from app.models.timesheet import (
    TimesheetRecord, TimesheetRecordItem, ApprovalHistory, ItemModificationHistory
)
from app.schemas.timesheet import (
    WorkflowStatus, ApproverType, InvalidTransitionError,
    ItemView, RecordView, GroupedRecord, BatchApprovalResult, GroupFailure
)
from app.services.grouping_service import group_records
from app.utils.datetime_utils import utc_now
from app.utils.permissions import is_super_admin, is_admin
from app.utils.retry import with_retry
from app.utils.validators import validate_item_quantity, to_decimal

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

UNKNOWN_USER = "未知用户"
UNKNOWN_SUPERVISOR = "未知班长"
UNKNOWN_SECTION_CHIEF = "未知段长"
UNKNOWN_LINE = "未知生产线"
UNKNOWN_CATEGORY = "未知类型"
UNKNOWN_PRODUCT = "未知产品"
UNKNOWN_PROCESS = "未知工序"

APPROVER_LABELS = {
    ApproverType.SUPERVISOR: "班长",
    ApproverType.SECTION_CHIEF: "段长",
}


def compute_amount(quantity, unit_price) -> Decimal:
    """金額 = 數量 × 單價，四捨五入到分"""
    return (to_decimal(quantity) * to_decimal(unit_price)).quantize(CENT, rounding=ROUND_HALF_UP)


class ProcessCache:
    """單次查詢內的工序資訊快取，每次查詢建立新的實例"""

    def __init__(self, db: Session):
        self.db = db
        self._cache: Dict[int, dict] = {}

    def load(self, process_ids: Iterable[Optional[int]]) -> None:
        """批次載入尚未快取的工序"""
        missing = {pid for pid in process_ids if pid is not None and pid not in self._cache}
        if not missing:
            return

        processes = self.db.query(Process).filter(Process.id.in_(missing)).all()
        for process in processes:
            self._cache[process.id] = {
                "product_process": process.product_process,
                "product_name": process.product_name,
                "production_category": process.production_category,
                "production_line": process.production_line,
                "unit_price": process.unit_price,
                "unit": process.unit,
            }

    def get(self, process_id: Optional[int]) -> dict:
        if process_id is None:
            return {}
        if process_id not in self._cache:
            self.load([process_id])
        return self._cache.get(process_id, {})

    def __len__(self) -> int:
        return len(self._cache)


class ApprovalService:
    """審核流程業務邏輯服務"""

    def __init__(self, db: Session):
        self.db = db

    # 讀取

    @with_retry()
    def _query_stage_records(self, user: User, approver_type: ApproverType) -> List[TimesheetRecord]:
        query = self.db.query(TimesheetRecord).options(
            selectinload(TimesheetRecord.items),
            selectinload(TimesheetRecord.user),
            selectinload(TimesheetRecord.supervisor),
            selectinload(TimesheetRecord.section_chief),
        ).filter(TimesheetRecord.status == approver_type.stage_status.value)

        if not is_super_admin(user):
            if approver_type == ApproverType.SUPERVISOR:
                query = query.filter(TimesheetRecord.supervisor_id == user.id)
            else:
                query = query.filter(TimesheetRecord.section_chief_id == user.id)

        return query.order_by(TimesheetRecord.created_at.desc(), TimesheetRecord.id.desc()).all()

    def build_item_view(self, item: TimesheetRecordItem, cache: ProcessCache) -> ItemView:
        process = cache.get(item.process_id)
        unit_price = item.unit_price
        if unit_price is None:
            unit_price = process.get("unit_price")
        unit_price = to_decimal(unit_price)

        return ItemView(
            id=item.id,
            record_id=item.timesheet_record_id,
            process_id=item.process_id,
            work_type=process.get("production_category") or UNKNOWN_CATEGORY,
            product=process.get("product_name") or UNKNOWN_PRODUCT,
            process=process.get("product_process") or UNKNOWN_PROCESS,
            production_line=process.get("production_line") or UNKNOWN_LINE,
            quantity=float(to_decimal(item.quantity)),
            unit=item.unit or process.get("unit") or "件",
            unit_price=float(unit_price),
            amount=float(compute_amount(item.quantity, unit_price)),
        )

    def build_record_view(self, record: TimesheetRecord, cache: ProcessCache) -> RecordView:
        items = [self.build_item_view(item, cache) for item in record.items]

        return RecordView(
            id=record.id,
            user_id=record.user_id,
            user_name=record.user_name or (record.user.name if record.user else None) or UNKNOWN_USER,
            work_date=record.work_date,
            shift_type=record.shift_type or "白班",
            status=WorkflowStatus(record.status),
            supervisor_id=record.supervisor_id,
            supervisor_name=record.supervisor_name
                or (record.supervisor.name if record.supervisor else None)
                or UNKNOWN_SUPERVISOR,
            section_chief_id=record.section_chief_id,
            section_chief_name=record.section_chief_name
                or (record.section_chief.name if record.section_chief else None)
                or UNKNOWN_SECTION_CHIEF,
            production_line=items[0].production_line if items else UNKNOWN_LINE,
            created_at=record.created_at,
            updated_at=record.updated_at,
            items=items,
        )

    def fetch_pending(self, user: User, approver_type: ApproverType) -> List[GroupedRecord]:
        """
        取得目前審核階段的待審記錄。

        Args:
            user: 審核人
            approver_type: 班長審核 pending，段長審核 approved

        Returns:
            依 (員工, 工作日期) 分組後的記錄

        超級管理員不受指派範圍限制。
        """
        records = self._query_stage_records(user, approver_type)

        cache = ProcessCache(self.db)
        cache.load(item.process_id for record in records for item in record.items)

        views = [self.build_record_view(record, cache) for record in records]
        views = [view for view in views if view.items]

        logger.info(
            f"{approver_type.value} {user.id} 取得 {len(views)} 筆待審記錄，"
            f"涉及 {len(cache)} 個工序"
        )
        return group_records(views)

    # 審核

    def _check_scope(self, record: TimesheetRecord, approver: User, approver_type: ApproverType) -> None:
        if is_super_admin(approver):
            return
        assigned = record.supervisor_id if approver_type == ApproverType.SUPERVISOR else record.section_chief_id
        if assigned != approver.id:
            raise PermissionError(f"您不是记录 {record.id} 指派的{APPROVER_LABELS[approver_type]}")

    def _load_records(self, record_ids: List[int]) -> List[TimesheetRecord]:
        unique_ids = list(dict.fromkeys(record_ids))
        if not unique_ids:
            raise ValueError("请选择要审核的记录")

        records = self.db.query(TimesheetRecord).filter(TimesheetRecord.id.in_(unique_ids)).all()
        found = {record.id for record in records}
        missing = [rid for rid in unique_ids if rid not in found]
        if missing:
            raise ValueError(f"工时记录不存在: {', '.join(str(rid) for rid in missing)}")

        by_id = {record.id: record for record in records}
        return [by_id[rid] for rid in unique_ids]

    def _transition(self, record_ids: List[int], approver: User, approver_type: ApproverType,
                    action: str, comment: Optional[str]) -> List[TimesheetRecord]:
        records = self._load_records(record_ids)

        next_statuses = {}
        for record in records:
            self._check_scope(record, approver, approver_type)
            current = WorkflowStatus(record.status)
            if current != approver_type.stage_status:
                raise InvalidTransitionError(
                    f"記錄 {record.id} 目前狀態為 {current.value}，"
                    f"無法由{APPROVER_LABELS[approver_type]}處理"
                )
            next_statuses[record.id] = current.try_advance() if action == "approved" else current.try_reject()

        try:
            now = utc_now()
            for record in records:
                record.status = next_statuses[record.id].value
                record.updated_at = now
            self.db.flush()

            # 狀態更新成功後才寫入審核歷史
            for record in records:
                self.db.add(ApprovalHistory(
                    timesheet_record_id=record.id,
                    approver_id=approver.id,
                    approver_name=approver.name,
                    approver_type=approver_type.value,
                    action=action,
                    comment=comment or None,
                    created_at=now,
                ))

            self.db.commit()
            logger.info(
                f"{approver_type.value} {approver.id} {action} 記錄 {[r.id for r in records]}"
            )
            return records

        except Exception as e:
            self.db.rollback()
            raise ValueError(f"Failed to update record status: {str(e)}")

    def approve_single(self, record_id: int, approver: User, approver_type: ApproverType,
                       comment: Optional[str] = "") -> TimesheetRecord:
        """審核通過單筆記錄"""
        return self._transition([record_id], approver, approver_type, "approved", comment)[0]

    def approve_grouped(self, record_ids: List[int], approver: User, approver_type: ApproverType,
                        comment: Optional[str] = "") -> List[TimesheetRecord]:
        """審核通過同一組的全部記錄"""
        return self._transition(record_ids, approver, approver_type, "approved", comment)

    def reject_records(self, record_ids: List[int], approver: User, approver_type: ApproverType,
                       comment: Optional[str] = "") -> List[TimesheetRecord]:
        return self._transition(record_ids, approver, approver_type, "rejected", comment)

    def approve_batch(self, group_keys: List[str], approver: User, approver_type: ApproverType,
                      comment: Optional[str] = "") -> BatchApprovalResult:
        """
        依序審核多個記錄組。

        已成功的組不會因後續失敗而回滾，失敗的組記錄在結果中。
        """
        groups = {group.key: group for group in self.fetch_pending(approver, approver_type)}
        result = BatchApprovalResult()

        for key in dict.fromkeys(group_keys):
            group = groups.get(key)
            if group is None:
                result.failed_count += 1
                result.failures.append(GroupFailure(key=key, error="找不到待審核的記錄組"))
                continue

            try:
                records = self.approve_grouped(group.record_ids, approver, approver_type, comment)
                result.success_count += 1
                result.approved_record_ids.extend(record.id for record in records)
            except (ValueError, PermissionError) as e:
                logger.error(f"批次審核記錄組 {key} 失敗: {e}")
                result.failed_count += 1
                result.failures.append(GroupFailure(key=key, error=str(e)))

        logger.info(
            f"批次審核完成: 成功 {result.success_count} 組，失敗 {result.failed_count} 組"
        )
        return result

    # 數量修改

    def get_item(self, item_id: int) -> TimesheetRecordItem:
        item = self.db.query(TimesheetRecordItem).filter(TimesheetRecordItem.id == item_id).first()
        if not item:
            raise ValueError("工时明细不存在")
        return item

    def _check_edit_permission(self, record: TimesheetRecord, modifier: User) -> None:
        if is_admin(modifier):
            return
        if modifier.id not in (record.supervisor_id, record.section_chief_id):
            raise PermissionError("您没有权限修改此工时记录")

    def edit_quantity(self, item_id: int, new_quantity, modifier: User,
                      reason: Optional[str] = None) -> TimesheetRecordItem:
        """
        修改工時明細數量並記錄修改歷史。

        Args:
            item_id: 明細 ID
            new_quantity: 新數量
            modifier: 修改人
            reason: 修改原因

        Returns:
            更新後的明細

        Raises:
            ValidationError: 數量不符合工時類型規則
            PermissionError: 修改人不是管理員或該記錄的審核人
        """
        item = self.get_item(item_id)
        record = item.record
        self._check_edit_permission(record, modifier)

        if WorkflowStatus(record.status) in (WorkflowStatus.SECTION_CHIEF_APPROVED, WorkflowStatus.REJECTED):
            raise InvalidTransitionError("已完成审核的记录不能修改数量")

        category = item.process.production_category if item.process else None
        quantity = validate_item_quantity(category, new_quantity)

        unit_price = item.unit_price
        if unit_price is None and item.process is not None:
            unit_price = item.process.unit_price

        old_quantity = to_decimal(item.quantity)
        old_amount = to_decimal(item.amount)
        new_amount = compute_amount(quantity, unit_price)

        try:
            item.quantity = quantity
            item.amount = new_amount
            item.updated_at = utc_now()
            self.db.flush()

            self.db.add(ItemModificationHistory(
                timesheet_record_item_id=item.id,
                timesheet_record_id=record.id,
                modifier_id=modifier.id,
                modifier_name=modifier.name,
                old_quantity=old_quantity,
                new_quantity=quantity,
                old_amount=old_amount,
                new_amount=new_amount,
                modification_reason=reason or "数量修改",
                created_at=utc_now(),
            ))

            self.db.commit()
            self.db.refresh(item)

            logger.info(f"用戶 {modifier.id} 將明細 {item.id} 數量由 {old_quantity} 改為 {quantity}")
            return item

        except Exception as e:
            self.db.rollback()
            raise ValueError(f"Failed to update quantity: {str(e)}")

    # 歷史

    @with_retry()
    def get_approval_history(self, record_id: int) -> List[dict]:
        """取得記錄的審核歷史，新的在前"""
        entries = self.db.query(ApprovalHistory).options(
            selectinload(ApprovalHistory.approver)
        ).filter(
            ApprovalHistory.timesheet_record_id == record_id
        ).order_by(ApprovalHistory.created_at.desc(), ApprovalHistory.id.desc()).all()

        return [
            {
                "id": entry.id,
                "timesheet_record_id": entry.timesheet_record_id,
                "approver_id": entry.approver_id,
                "approver_name": entry.approver_name
                    or (entry.approver.name if entry.approver else None)
                    or UNKNOWN_USER,
                "approver_type": entry.approver_type,
                "action": entry.action,
                "comment": entry.comment,
                "created_at": entry.created_at,
            }
            for entry in entries
        ]

    @with_retry()
    def get_modification_history(self, record_id: int) -> List[ItemModificationHistory]:
        return self.db.query(ItemModificationHistory).filter(
            ItemModificationHistory.timesheet_record_id == record_id
        ).order_by(ItemModificationHistory.created_at.desc(), ItemModificationHistory.id.desc()).all()
