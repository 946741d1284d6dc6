"""
Interval record model for correlated on/off signals
"""

from sqlalchemy import Column, Integer, String, DateTime, Float, Text
from partmon.database.connection import Base

class IntervalRecord(Base):
    """Elapsed time between a device's on and off signals"""

    __tablename__ = "interval_report"
    __time_attribute__ = "start_time"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, index=True)  # device id
    category = Column(String(255))
    start_time = Column(DateTime, nullable=False, index=True)
    duration = Column(Float, nullable=False)  # seconds
    comments = Column(Text)

    def __repr__(self):
        return f"<IntervalRecord(name={self.name}, start_time={self.start_time}, duration={self.duration})>"
