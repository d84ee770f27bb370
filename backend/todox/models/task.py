from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from todox.core.database import Base, utcnow


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    status = Column(String(20), default="active", nullable=False)  # active, complete
    completed_at = Column(DateTime(timezone=True), nullable=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
    due_date = Column(Date, nullable=True)
    due_time = Column(String, nullable=True)  # usually "HH:MM", stored as given
    priority = Column(String(10), default="medium", nullable=False)  # low, medium, high
    description = Column(Text, default="", nullable=False)
    # Embedded attachment documents; always reassign the list so the change is tracked
    attachments = Column(JSON, default=list, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    category = relationship("Category", lazy="joined")
