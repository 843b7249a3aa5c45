from sqlalchemy import Column, Integer, String, DateTime
from careerhub.database import Base
from careerhub.utils.clock import utcnow

ROLE_ADMIN = 1
ROLE_STUDENT = 2
ROLE_COUNSELOR = 3
ROLE_COMPANY = 4

ROLE_NAMES = {
    ROLE_ADMIN: "Admin",
    ROLE_STUDENT: "Student",
    ROLE_COUNSELOR: "Counselor",
    ROLE_COMPANY: "Company",
}


def role_name(role_id) -> str:
    return ROLE_NAMES.get(role_id, "Unknown")


def meeting_role_name(role_id) -> str:
    """Meeting templates only exist for the three portal roles."""
    if role_id == ROLE_STUDENT:
        return "Student"
    if role_id == ROLE_COUNSELOR:
        return "Counselor"
    return "Company"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), nullable=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    role_id = Column(Integer, nullable=False, default=ROLE_STUDENT, index=True)
    created_at = Column(DateTime, default=utcnow)

    @property
    def role(self) -> str:
        return role_name(self.role_id)

    def to_dict(self):
        return {
            "userID": self.id,
            "username": self.username,
            "email": self.email,
            "roleID": self.role_id,
            "role": self.role,
        }
