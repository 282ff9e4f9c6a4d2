from sqlalchemy import Column, Integer, String, Date, DateTime, Numeric, Text, func, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base

class TimesheetRecord(Base):
    __tablename__ = "timesheet_records"
    
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"))
    work_date = Column(Date, nullable=False, index=True)
    shift_type = Column(String(20), default="白班")  # '白班', '夜班'
    supervisor_id = Column(Integer, ForeignKey("users.id"), index=True)
    section_chief_id = Column(Integer, ForeignKey("users.id"), index=True)
    status = Column(String(30), nullable=False, default="pending", index=True)
    # 提交時的姓名快照，避免用戶改名後顯示錯亂
    user_name = Column(String(100))
    supervisor_name = Column(String(100))
    section_chief_name = Column(String(100))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    
    user = relationship("User", foreign_keys=[user_id])
    supervisor = relationship("User", foreign_keys=[supervisor_id])
    section_chief = relationship("User", foreign_keys=[section_chief_id])
    items = relationship(
        "TimesheetRecordItem",
        back_populates="record",
        cascade="all, delete-orphan",
        order_by="TimesheetRecordItem.id"
    )

class TimesheetRecordItem(Base):
    __tablename__ = "timesheet_record_items"
    
    id = Column(Integer, primary_key=True, index=True)
    timesheet_record_id = Column(Integer, ForeignKey("timesheet_records.id", ondelete="CASCADE"), nullable=False, index=True)
    process_id = Column(Integer, ForeignKey("processes.id"))
    quantity = Column(Numeric(10, 2), nullable=False)
    unit = Column(String(20), default="件")
    unit_price = Column(Numeric(10, 2), default=0)
    amount = Column(Numeric(12, 2), default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    
    record = relationship("TimesheetRecord", back_populates="items")
    process = relationship("Process")

class ApprovalHistory(Base):
    __tablename__ = "approval_history"
    
    id = Column(Integer, primary_key=True, index=True)
    timesheet_record_id = Column(Integer, ForeignKey("timesheet_records.id", ondelete="CASCADE"), nullable=False, index=True)
    approver_id = Column(Integer, ForeignKey("users.id"))
    approver_name = Column(String(100))
    approver_type = Column(String(20), nullable=False)  # 'supervisor', 'section_chief'
    action = Column(String(20), nullable=False)  # 'approved', 'rejected'
    comment = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    
    approver = relationship("User")

class ItemModificationHistory(Base):
    __tablename__ = "timesheet_item_modification_history"
    
    id = Column(Integer, primary_key=True, index=True)
    timesheet_record_item_id = Column(Integer, ForeignKey("timesheet_record_items.id", ondelete="CASCADE"), nullable=False, index=True)
    timesheet_record_id = Column(Integer, ForeignKey("timesheet_records.id", ondelete="CASCADE"), nullable=False, index=True)
    modifier_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    modifier_name = Column(String(100))
    old_quantity = Column(Numeric(10, 2), nullable=False)
    new_quantity = Column(Numeric(10, 2), nullable=False)
    old_amount = Column(Numeric(12, 2), nullable=False)
    new_amount = Column(Numeric(12, 2), nullable=False)
    modification_reason = Column(Text, default="数量修改")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
