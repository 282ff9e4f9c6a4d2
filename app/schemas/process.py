from pydantic import BaseModel
from typing import Optional, List
from datetime import date, datetime
from enum import Enum

class WorkCategory(str, Enum):
    PRODUCTION = "生产工时"
    NON_PRODUCTION = "非生产工时"

class ProcessBase(BaseModel):
    company_id: int
    production_line: str
    production_category: WorkCategory
    product_name: str
    product_process: str
    unit_price: Optional[float] = None
    unit: str = "件"
    effective_date: Optional[date] = None

class ProcessCreate(ProcessBase):
    pass

class ProcessUpdate(BaseModel):
    production_line: Optional[str] = None
    production_category: Optional[WorkCategory] = None
    product_name: Optional[str] = None
    product_process: Optional[str] = None
    unit_price: Optional[float] = None
    unit: Optional[str] = None
    effective_date: Optional[date] = None
    is_active: Optional[bool] = None

class ProcessResponse(ProcessBase):
    id: int
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ImportResult(BaseModel):
    """Excel 匯入結果"""
    success: bool
    total_rows: int = 0
    success_count: int = 0
    failed_count: int = 0
    validation_errors: List[str] = []
    errors: List[str] = []
