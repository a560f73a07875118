"""
Operator-editable settings that must take effect without a restart
(conversion toggle, mesh output format).
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, String, Text

from fabquote.models.base import Base


class RuntimeSetting(Base):
    __tablename__ = "runtime_settings"

    key = Column(String(120), primary_key=True)
    value = Column(Text, nullable=True)
    updated_by = Column(String(120), nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
