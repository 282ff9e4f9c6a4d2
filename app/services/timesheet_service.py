"""
Timesheet submission by employees.
"""

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session, selectinload

from app.models.user import User
from app.models.process import Process
from app.models.timesheet import TimesheetRecord, TimesheetRecordItem
from app.schemas.timesheet import TimesheetRecordCreate, WorkflowStatus
from app.services.approval_service import compute_amount
from app.utils.retry import with_retry
from app.utils.validators import ValidationError, validate_item_quantity, to_decimal

logger = logging.getLogger(__name__)


class TimesheetService:
    """工時提交業務邏輯服務"""

    def __init__(self, db: Session):
        self.db = db

    def _get_user(self, user_id: Optional[int], label: str) -> User:
        if not user_id:
            raise ValidationError(f"请选择{label}", field=label)
        user = self.db.query(User).filter(User.id == user_id, User.is_active == True).first()
        if not user:
            raise ValidationError(f"{label}不存在或已停用", field=label)
        return user

    def submit_record(self, user: User, record_data: TimesheetRecordCreate) -> TimesheetRecord:
        """
        提交工時記錄，狀態為 pending 等待班長審核。

        Args:
            user: 提交人
            record_data: 記錄與明細

        Returns:
            新建立的工時記錄

        Raises:
            ValidationError: 缺少班長/段長、沒有明細或數量不正確
        """
        supervisor = self._get_user(record_data.supervisor_id, "班长")
        section_chief = self._get_user(record_data.section_chief_id, "段长")

        if not record_data.items:
            raise ValidationError("请至少添加一条工时记录", field="items")

        process_ids = {item.process_id for item in record_data.items}
        processes = {
            process.id: process
            for process in self.db.query(Process).filter(Process.id.in_(process_ids)).all()
        }

        items = []
        for index, item_data in enumerate(record_data.items, start=1):
            process = processes.get(item_data.process_id)
            if process is None or not process.is_active:
                raise ValidationError(f"第{index}条记录的工序不存在或已停用", field="process_id")
            if process.company_id != user.company_id:
                raise ValidationError(f"第{index}条记录的工序不属于您的公司", field="process_id")

            try:
                quantity = validate_item_quantity(process.production_category, item_data.quantity)
            except ValidationError as e:
                raise ValidationError(f"第{index}条记录：{e.message}", field="quantity")
            if quantity <= 0:
                raise ValidationError(f"第{index}条记录：数量必须大于0", field="quantity")

            unit_price = to_decimal(process.unit_price)
            items.append(TimesheetRecordItem(
                process_id=process.id,
                quantity=quantity,
                unit=process.unit or "件",
                unit_price=unit_price,
                amount=compute_amount(quantity, unit_price),
            ))

        try:
            record = TimesheetRecord(
                user_id=user.id,
                company_id=user.company_id,
                work_date=record_data.work_date,
                shift_type=record_data.shift_type.value,
                supervisor_id=supervisor.id,
                section_chief_id=section_chief.id,
                status=WorkflowStatus.PENDING.value,
                user_name=user.name,
                supervisor_name=supervisor.name,
                section_chief_name=section_chief.name,
                items=items,
            )
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)

            logger.info(f"用戶 {user.id} 提交工時記錄 {record.id}，共 {len(items)} 條明細")
            return record

        except Exception as e:
            self.db.rollback()
            raise ValueError(f"Failed to submit timesheet record: {str(e)}")

    @with_retry()
    def list_user_records(self, user: User, start_date: Optional[date] = None,
                          end_date: Optional[date] = None,
                          status: Optional[WorkflowStatus] = None) -> List[TimesheetRecord]:
        """取得用戶自己的工時記錄"""
        query = self.db.query(TimesheetRecord).options(
            selectinload(TimesheetRecord.items)
        ).filter(TimesheetRecord.user_id == user.id)

        if start_date:
            query = query.filter(TimesheetRecord.work_date >= start_date)
        if end_date:
            query = query.filter(TimesheetRecord.work_date <= end_date)
        if status:
            query = query.filter(TimesheetRecord.status == status.value)

        return query.order_by(TimesheetRecord.work_date.desc(), TimesheetRecord.id.desc()).all()
