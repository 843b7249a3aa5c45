from sqlalchemy import Column, Integer, String, Date, Time, Boolean, Text, DateTime, ForeignKey
from datetime import datetime
from careerhub.database import Base
from careerhub.utils.clock import utcnow


class Meeting(Base):
    __tablename__ = "meetings"

    id = Column(Integer, primary_key=True, index=True)
    requestor_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    recipient_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    meeting_title = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    meeting_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    # Statuses: 'requested', 'accepted', 'declined', 'cancelled', 'completed'
    status = Column(String(20), nullable=False, default="requested", index=True)

    # Notified flags for the scheduled tasks
    reminder_sent = Column(Boolean, nullable=False, default=False)
    feedback_request_sent = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=utcnow)

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.meeting_date, self.start_time)

    @property
    def time_range(self) -> str:
        return f"{self.start_time.strftime('%H:%M')} - {self.end_time.strftime('%H:%M')}"

    def to_dict(self):
        return {
            "meetingID": self.id,
            "requestorID": self.requestor_id,
            "recipientID": self.recipient_id,
            "meetingTitle": self.meeting_title,
            "meetingDate": self.meeting_date.isoformat() if self.meeting_date else None,
            "startTime": self.start_time.strftime("%H:%M") if self.start_time else None,
            "endTime": self.end_time.strftime("%H:%M") if self.end_time else None,
            "status": self.status,
        }
