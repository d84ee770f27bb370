from sqlalchemy import Column, DateTime, Integer, String

from todox.core.database import Base, utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    avatar = Column(String, nullable=True)  # signed URL or /api/uploads/... path
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
