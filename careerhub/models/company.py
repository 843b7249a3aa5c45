from sqlalchemy import Column, Integer, String, Text, ForeignKey
from careerhub.database import Base


class Company(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    company_name = Column(String(255), nullable=False)
    company_description = Column(Text, nullable=True)
    company_website = Column(String(255), nullable=True)
