from sqlalchemy import Column, Integer, String, DateTime
from careerhub.database import Base
from careerhub.utils.clock import utcnow


class Registration(Base):
    """Counselor/company sign-ups awaiting admin approval"""
    __tablename__ = "registrations"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False)
    user_type = Column(String(50), nullable=True)
    # Statuses: 'pending', 'approved', 'declined'
    status = Column(String(20), nullable=False, default="pending", index=True)
    created_at = Column(DateTime, default=utcnow)
