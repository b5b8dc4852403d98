# app/models/user.py
from sqlalchemy import Column, String, Boolean, ForeignKey, Uuid, JSON
from .base import Base


class User(Base):
    __tablename__ = "users"

    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True)
    role = Column(String(20), default="student", nullable=False)

    batch_id = Column(Uuid, ForeignKey("batches.id"), nullable=True, index=True)
    section_id = Column(Uuid, ForeignKey("sections.id"), nullable=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Notification preferences
    fcm_token = Column(String(512))
    reminder_offsets = Column(JSON, default=list)  # minutes before class, e.g. [10, 30]
    daily_summary_enabled = Column(Boolean, default=True, nullable=False)
