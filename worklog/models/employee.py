from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String

from worklog.database import Base


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False)
    hourly_salary = Column(Numeric(12, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
