from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String

from worklog.database import Base


class Project(Base):
    __tablename__ = "projects"

    id = Column(String, primary_key=True, index=True)
    company_id = Column(String, ForeignKey("companies.id"), nullable=True, index=True)
    name = Column(String, nullable=False)
    value = Column(Numeric(14, 2), nullable=True)  # contracted value
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
