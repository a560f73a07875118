import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text

from fabquote.models.base import Base


class Attachment(Base):
    __tablename__ = "attachments"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    s3_bucket = Column(String(120), nullable=True)
    s3_key = Column(Text, nullable=False)
    file_name = Column(String(255), nullable=False)
    content_type = Column(String(120), nullable=False, default="application/octet-stream")
    file_size = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
