"""Report data routes. PDF/Excel/CSV rendering happens client side."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from sqlalchemy.orm import aliased
from pydantic import BaseModel
from typing import Optional, List

from careerhub.database import get_db
from careerhub.middleware.auth import get_current_user, require_admin, TokenUser
from careerhub.models.company import Company
from careerhub.models.job import Job, JobApplication
from careerhub.models.meeting import Meeting
from careerhub.models.student import Student
from careerhub.models.user import User, ROLE_ADMIN, ROLE_COUNSELOR
from careerhub.utils.clock import utcnow
from careerhub.utils.logger import get_logger

router = APIRouter()
logger = get_logger("routes.reports")

REPORT_FORMATS = ("pdf", "excel", "csv")


class StudentProfileReport(BaseModel):
    studentID: Optional[int] = None
    format: Optional[str] = None
    sections: Optional[List[str]] = None


def _student_row(student: Student, username: str, email: str) -> dict:
    return {**student.to_dict(), "username": username, "email": email}


@router.get("/students")
async def list_students(
    admin: TokenUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    rows = (await db.execute(
        select(Student, User.username, User.email)
        .join(User, Student.user_id == User.id)
        .order_by(Student.student_name, Student.id)
    )).all()
    return [_student_row(student, username, email) for student, username, email in rows]


@router.post("/student-profile")
async def student_profile(
    body: StudentProfileReport,
    current_user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not body.studentID:
        raise HTTPException(status_code=400, detail="Student ID is required")
    if body.format not in REPORT_FORMATS:
        raise HTTPException(status_code=400, detail="Valid format is required (pdf, excel, csv)")
    if not body.sections:
        raise HTTPException(status_code=400, detail="At least one report section is required")

    row = (await db.execute(
        select(Student, User.username, User.email)
        .join(User, Student.user_id == User.id)
        .where(Student.id == body.studentID)
    )).first()
    if row is None:
        raise HTTPException(status_code=404, detail="Student not found")
    student, username, email = row

    # Staff may report on anyone, students only on themselves
    if current_user.role_id not in (ROLE_ADMIN, ROLE_COUNSELOR) and current_user.id != student.user_id:
        raise HTTPException(status_code=403, detail="Not allowed to view this student's report")

    sections = body.sections
    applications = []
    if "applications" in sections:
        app_rows = (await db.execute(
            select(JobApplication, Job.title, Company.company_name)
            .join(Job, JobApplication.job_id == Job.id)
            .join(Company, Job.company_id == Company.id)
            .where(JobApplication.student_user_id == student.user_id)
            .order_by(JobApplication.submitted_at.desc())
        )).all()
        applications = [app.to_dict(title, company) for app, title, company in app_rows]

    meetings = []
    if "meetings" in sections:
        requestor = aliased(User)
        recipient = aliased(User)
        meeting_rows = (await db.execute(
            select(Meeting, requestor.username, recipient.username)
            .join(requestor, Meeting.requestor_id == requestor.id)
            .join(recipient, Meeting.recipient_id == recipient.id)
            .where(or_(Meeting.requestor_id == student.user_id, Meeting.recipient_id == student.user_id))
            .order_by(Meeting.meeting_date.desc(), Meeting.start_time.desc())
        )).all()
        for meeting, requestor_name, recipient_name in meeting_rows:
            other = recipient_name if meeting.requestor_id == student.user_id else requestor_name
            meetings.append({**meeting.to_dict(), "otherPartyName": other})

    pathways = list(student.student_career_pathways or []) if "pathways" in sections else []
    documents = list(student.student_documents or []) if "documents" in sections else []

    logger.info(
        "report.student_profile",
        extra={"student_id": student.id, "report_format": body.format, "sections": sections},
    )
    return {
        "success": True,
        "data": {
            "student": _student_row(student, username, email),
            "applications": applications,
            "meetings": meetings,
            "pathways": pathways,
            "documents": documents,
            "generatedAt": utcnow().isoformat(),
            "format": body.format,
            "sections": sections,
        },
    }
