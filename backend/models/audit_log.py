from sqlalchemy import Column, Integer, String, DateTime, JSON
from database import Base
from utils.time_utils import now_local

class AuditLog(Base):
    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, index=True)
    table_name = Column(String, nullable=False)
    record_id = Column(Integer, nullable=False)
    changed_at = Column(DateTime(timezone=True), default=now_local)
    changed_by = Column(String, nullable=False)
    action = Column(String, nullable=False)  # e.g., 'CREATE', 'UPDATE', 'DELETE', 'RECEIVE'
    old_values = Column(JSON)
    new_values = Column(JSON)
