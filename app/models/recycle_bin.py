from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON, func, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base

class RecycleBinEntry(Base):
    __tablename__ = "recycle_bin"
    
    id = Column(Integer, primary_key=True, index=True)
    item_type = Column(String(50), nullable=False, index=True)  # 'timesheet_record', 'timesheet_record_item', 'process'
    item_id = Column(Integer, nullable=False, index=True)
    item_data = Column(JSON, nullable=False)
    deleted_by = Column(Integer, ForeignKey("users.id"), index=True)
    deleted_at = Column(DateTime(timezone=True), nullable=False, index=True)
    original_table = Column(String(100), nullable=False)
    company_id = Column(Integer, ForeignKey("companies.id"), index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    is_permanently_deleted = Column(Boolean, default=False, index=True)
    restored_at = Column(DateTime(timezone=True))
    restored_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    
    deleter = relationship("User", foreign_keys=[deleted_by])
