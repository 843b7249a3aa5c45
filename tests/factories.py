# tests/factories.py

from __future__ import annotations

from datetime import date, datetime, time

from careerhub.models.company import Company
from careerhub.models.job import Job, SavedJob
from careerhub.models.meeting import Meeting
from careerhub.models.registration import Registration
from careerhub.models.student import Student
from careerhub.models.user import User, ROLE_STUDENT, ROLE_COMPANY


async def make_user(db, role_id: int = ROLE_STUDENT, username: str = "user", email: str = None) -> User:
    user = User(username=username, email=email or f"{username}@example.com", role_id=role_id)
    db.add(user)
    await db.commit()
    return user


async def make_company(db, username: str = "acme", name: str = "Acme Corp") -> Company:
    owner = await make_user(db, ROLE_COMPANY, username)
    company = Company(user_id=owner.id, company_name=name)
    db.add(company)
    await db.commit()
    return company


async def make_job(db, company: Company, end_date: datetime, title: str = "Data Analyst", **fields) -> Job:
    job = Job(company_id=company.id, title=title, end_date=end_date, **fields)
    db.add(job)
    await db.commit()
    return job


async def make_student(db, user: User, **fields) -> Student:
    student = Student(user_id=user.id, **fields)
    db.add(student)
    await db.commit()
    return student


def complete_profile(name: str = "Sam Student") -> dict:
    return {
        "student_name": name,
        "student_contact_number": "555-0100",
        "student_description": "Final year student",
        "student_profile_image_path": "/img/sam.png",
        "student_category": "Undergraduate",
    }


async def save_job(db, user: User, job: Job) -> None:
    db.add(SavedJob(user_id=user.id, job_id=job.id))
    await db.commit()


async def make_meeting(
    db,
    requestor: User,
    recipient: User,
    meeting_date: date,
    start: time,
    end: time,
    status: str = "accepted",
    title: str = "Career chat",
) -> Meeting:
    meeting = Meeting(
        requestor_id=requestor.id,
        recipient_id=recipient.id,
        meeting_title=title,
        meeting_date=meeting_date,
        start_time=start,
        end_time=end,
        status=status,
    )
    db.add(meeting)
    await db.commit()
    return meeting


async def make_registration(db, email: str, status: str = "pending") -> Registration:
    registration = Registration(email=email, user_type="Company", status=status)
    db.add(registration)
    await db.commit()
    return registration
