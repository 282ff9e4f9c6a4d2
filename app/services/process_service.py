"""
Process (priced unit of work) management.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from app.models.user import User
from app.models.process import Process
from app.schemas.process import ProcessCreate, ProcessUpdate
from app.utils.permissions import is_super_admin
from app.utils.retry import with_retry
from app.utils.validators import DataValidator, ValidationError, sanitize_input, validate_unit_price

logger = logging.getLogger(__name__)

DUPLICATE_PROCESS_MESSAGE = "该工序已存在，请检查输入信息！"


class ProcessService:
    """工序管理業務邏輯服務"""

    def __init__(self, db: Session):
        self.db = db
        self.validator = DataValidator()

    def _check_company(self, company_id: int, user: User) -> None:
        if not is_super_admin(user) and company_id != user.company_id:
            raise PermissionError("您只能管理自己公司的工序")

    def get_process(self, process_id: int) -> Process:
        process = self.db.query(Process).filter(Process.id == process_id).first()
        if not process:
            raise ValueError("工序不存在")
        return process

    @with_retry()
    def list_processes(self, user: User, company_id: Optional[int] = None,
                       production_line: Optional[str] = None, production_category: Optional[str] = None,
                       include_inactive: bool = False) -> List[Process]:
        """取得工序列表，非超級管理員只能看到自己公司的工序"""
        query = self.db.query(Process)

        if not is_super_admin(user):
            query = query.filter(Process.company_id == user.company_id)
        elif company_id:
            query = query.filter(Process.company_id == company_id)

        if production_line:
            query = query.filter(Process.production_line == production_line)

        if production_category:
            query = query.filter(Process.production_category == production_category)

        if not include_inactive:
            query = query.filter(Process.is_active == True)

        return query.order_by(
            Process.production_line, Process.product_name, Process.product_process
        ).all()

    def find_duplicate(self, company_id: int, production_line: str, production_category: str,
                       product_name: str, product_process: str,
                       exclude_id: Optional[int] = None) -> Optional[Process]:
        """查找同公司內相同 (生产线, 工时类型, 产品名称, 产品工序) 的啟用工序"""
        query = self.db.query(Process).filter(
            Process.company_id == company_id,
            Process.production_line == production_line,
            Process.production_category == production_category,
            Process.product_name == product_name,
            Process.product_process == product_process,
            Process.is_active == True
        )
        if exclude_id is not None:
            query = query.filter(Process.id != exclude_id)
        return query.first()

    def create_process(self, process_data: ProcessCreate, user: User) -> Process:
        """
        建立工序。

        Raises:
            ValidationError: 資料不完整或與現有工序重複
            PermissionError: 跨公司建立
        """
        data = process_data.model_dump()
        is_valid, errors = self.validator.validate_process_data(data)
        if not is_valid:
            raise ValidationError("；".join(errors))

        self._check_company(process_data.company_id, user)

        fields = {
            "production_line": sanitize_input(process_data.production_line),
            "production_category": process_data.production_category.value,
            "product_name": sanitize_input(process_data.product_name),
            "product_process": sanitize_input(process_data.product_process),
        }

        if self.find_duplicate(process_data.company_id, **fields):
            raise ValidationError(DUPLICATE_PROCESS_MESSAGE)

        try:
            process = Process(
                company_id=process_data.company_id,
                unit_price=validate_unit_price(process_data.unit_price),
                unit=process_data.unit or "件",
                effective_date=process_data.effective_date,
                is_active=True,
                **fields
            )
            self.db.add(process)
            self.db.commit()
            self.db.refresh(process)

            logger.info(f"用戶 {user.id} 建立工序 {process.id}")
            return process

        except Exception as e:
            self.db.rollback()
            raise ValueError(f"Failed to create process: {str(e)}")

    def update_process(self, process_id: int, update_data: ProcessUpdate, user: User) -> Process:
        process = self.get_process(process_id)
        self._check_company(process.company_id, user)

        update_dict = update_data.model_dump(exclude_unset=True)
        if "production_category" in update_dict and update_dict["production_category"] is not None:
            update_dict["production_category"] = update_dict["production_category"].value
        if "unit_price" in update_dict:
            update_dict["unit_price"] = validate_unit_price(update_dict["unit_price"])
        for field in ("production_line", "product_name", "product_process"):
            if field in update_dict:
                update_dict[field] = sanitize_input(update_dict[field])
                if not update_dict[field]:
                    raise ValidationError(f"{field} 不能为空", field=field)

        merged = {
            "production_line": update_dict.get("production_line", process.production_line),
            "production_category": update_dict.get("production_category", process.production_category),
            "product_name": update_dict.get("product_name", process.product_name),
            "product_process": update_dict.get("product_process", process.product_process),
        }
        will_be_active = update_dict.get("is_active", process.is_active)
        if will_be_active and self.find_duplicate(process.company_id, exclude_id=process.id, **merged):
            raise ValidationError(DUPLICATE_PROCESS_MESSAGE)

        try:
            for field, value in update_dict.items():
                setattr(process, field, value)

            self.db.commit()
            self.db.refresh(process)
            return process

        except Exception as e:
            self.db.rollback()
            raise ValueError(f"Failed to update process: {str(e)}")

    def deactivate_process(self, process_id: int, user: User) -> Process:
        """停用工序（軟刪除）"""
        process = self.get_process(process_id)
        self._check_company(process.company_id, user)

        try:
            process.is_active = False
            self.db.commit()
            self.db.refresh(process)

            logger.info(f"用戶 {user.id} 停用工序 {process_id}")
            return process

        except Exception as e:
            self.db.rollback()
            raise ValueError(f"Failed to deactivate process: {str(e)}")
