from datetime import datetime

from sqlalchemy import Column, DateTime, String, Text

from walkscout.database import Base


class Preference(Base):
    __tablename__ = "preferences"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)  # JSON-encoded
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
