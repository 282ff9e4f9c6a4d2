from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, Numeric, func, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base

PRODUCTION_CATEGORY = "生产工时"
NON_PRODUCTION_CATEGORY = "非生产工时"
WORK_CATEGORIES = [PRODUCTION_CATEGORY, NON_PRODUCTION_CATEGORY]

class Process(Base):
    __tablename__ = "processes"
    
    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    production_line = Column(String(100), nullable=False)
    production_category = Column(String(50), nullable=False)  # '生产工时', '非生产工时'
    product_name = Column(String(100), nullable=False)
    product_process = Column(String(100), nullable=False)
    unit_price = Column(Numeric(10, 2))  # NULL 表示未定價
    unit = Column(String(20), default="件")
    effective_date = Column(Date)  # 生效年月，固定為當月 1 日
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    
    company = relationship("Company", backref="processes")
    
    @property
    def duplicate_key(self) -> tuple:
        """同公司內的唯一性鍵"""
        return (
            self.company_id,
            self.production_line,
            self.production_category,
            self.product_name,
            self.product_process,
        )
