from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, ForeignKey, UniqueConstraint
from careerhub.database import Base
from careerhub.utils.clock import utcnow


class Job(Base):
    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False, index=True)
    description = Column(Text)
    location = Column(String(255))
    job_type = Column(String(50))
    # Statuses: 'active', 'inactive', 'closed'
    status = Column(String(20), nullable=False, default="active", index=True)
    start_date = Column(DateTime, default=utcnow)
    end_date = Column(DateTime, nullable=False, index=True)

    # Notified flags for the scheduled tasks
    notified_expiring = Column(Boolean, nullable=False, default=False)
    notified_deadline = Column(Boolean, nullable=False, default=False)
    last_stats_sent = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)

    def to_dict(self, company_name: str = None):
        return {
            "jobID": self.id,
            "companyID": self.company_id,
            "companyName": company_name,
            "title": self.title,
            "description": self.description,
            "location": self.location,
            "jobType": self.job_type,
            "status": self.status,
            "endDate": self.end_date.isoformat() if self.end_date else None,
        }


class SavedJob(Base):
    __tablename__ = "saved_jobs"
    __table_args__ = (UniqueConstraint("user_id", "job_id", name="uq_saved_jobs_user_job"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    saved_at = Column(DateTime, default=utcnow)


class JobView(Base):
    __tablename__ = "job_views"

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    viewed_at = Column(DateTime, default=utcnow)


class JobApplication(Base):
    __tablename__ = "job_applications"

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    student_user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    # Statuses: 'pending', 'reviewed', 'shortlisted', 'rejected', 'accepted'
    status = Column(String(20), nullable=False, default="pending")
    submitted_at = Column(DateTime, default=utcnow)

    def to_dict(self, job_title: str = None, company_name: str = None):
        return {
            "applicationID": self.id,
            "jobID": self.job_id,
            "jobTitle": job_title,
            "companyName": company_name,
            "status": self.status,
            "submittedAt": self.submitted_at.isoformat() if self.submitted_at else None,
        }
