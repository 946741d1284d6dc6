"""
Andon alert model, upserted by alert id
"""

from sqlalchemy import Column, String, DateTime, Integer, Boolean
from partmon.database.connection import Base

class AlertRecord(Base):
    """Alert lifecycle as reported by the andon panels"""

    __tablename__ = "partmon_report"
    __time_attribute__ = "initiate_time"

    alert_id = Column(String(255), primary_key=True)
    alert = Column(String(255), nullable=False)
    alert_type = Column(String(100), nullable=False)
    location = Column(String(255), nullable=False)
    initiated_by = Column(String(255), nullable=False)
    acknowledge_by = Column(String(255))
    resolved_by = Column(String(255))
    initiate_time = Column(DateTime, nullable=False, index=True)
    acknowledge_time = Column(DateTime)
    resolved_time = Column(DateTime)
    sla_level = Column(Integer)
    is_active = Column(Boolean, default=False)

    def __repr__(self):
        return f"<AlertRecord(alert_id={self.alert_id}, alert={self.alert}, active={self.is_active})>"
