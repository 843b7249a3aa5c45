# tests/test_scheduled_tasks.py

from __future__ import annotations

from datetime import date, time, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from careerhub.models.ai_chat import ChatMessage, ChatUserPreference, Conversation
from careerhub.models.job import Job, JobApplication, JobView
from careerhub.models.meeting import Meeting
from careerhub.models.notification import Notification
from careerhub.models.student import Student
from careerhub.models.user import User, ROLE_ADMIN, ROLE_COUNSELOR, ROLE_STUDENT
from careerhub.services.notification_category_service import NotificationCategoryService
from careerhub.services.scheduled_tasks import days_until

from .conftest import NOW
from .factories import (
    complete_profile,
    make_company,
    make_job,
    make_meeting,
    make_registration,
    make_student,
    make_user,
    save_job,
)


async def notifications_for(session_factory, user_id=None):
    async with session_factory() as s:
        query = select(Notification).order_by(Notification.id)
        if user_id is not None:
            query = query.where(Notification.user_id == user_id)
        return list((await s.execute(query)).scalars().all())


async def load(session_factory, model, pk):
    async with session_factory() as s:
        return await s.get(model, pk)


def test_days_until_rounds_partial_days_up() -> None:
    assert days_until(NOW + timedelta(days=2), NOW) == 2
    assert days_until(NOW + timedelta(days=1, hours=1), NOW) == 2
    assert days_until(NOW + timedelta(hours=3), NOW) == 1


@pytest.mark.asyncio
async def test_expiring_job_is_flagged_and_notified_with_days_left(db, session_factory, runner, triggers) -> None:
    company = await make_company(db)
    job = await make_job(db, company, NOW + timedelta(days=2))

    result = await runner.check_expiring_jobs()

    assert result.ok
    assert (result.selected, result.processed, result.notifications) == (1, 1, 1)
    assert triggers.of_type("JOB_POSTING_EXPIRING") == [
        ("JOB_POSTING_EXPIRING", company.user_id, {"jobTitle": "Data Analyst", "daysLeft": 2})
    ]
    assert (await load(session_factory, Job, job.id)).notified_expiring is True

    [note] = await notifications_for(session_factory)
    assert note.user_id == company.user_id
    assert note.title == "Job Posting Expiring Soon"
    assert note.message == 'Your job posting "Data Analyst" will expire in 2 days.'
    assert note.related_job_id == job.id
    assert note.priority == "high"


@pytest.mark.asyncio
async def test_expiring_jobs_ignores_rows_outside_the_window(db, session_factory, runner) -> None:
    company = await make_company(db)
    await make_job(db, company, NOW + timedelta(days=5), title="Later")
    await make_job(db, company, NOW - timedelta(hours=1), title="Already closed")
    await make_job(db, company, NOW + timedelta(days=1), title="Inactive", status="inactive")
    await make_job(db, company, NOW + timedelta(days=1), title="Done", notified_expiring=True)

    result = await runner.check_expiring_jobs()

    assert result.ok
    assert result.selected == 0
    assert await notifications_for(session_factory) == []


@pytest.mark.asyncio
async def test_trigger_failure_keeps_earlier_rows_and_stops_the_batch(db, session_factory, runner, triggers) -> None:
    first = await make_company(db, "first", "First Co")
    second = await make_company(db, "second", "Second Co")
    third = await make_company(db, "third", "Third Co")
    job_1 = await make_job(db, first, NOW + timedelta(days=1))
    job_2 = await make_job(db, second, NOW + timedelta(days=1))
    job_3 = await make_job(db, third, NOW + timedelta(days=1))
    triggers.fail_for_users.add(second.user_id)

    result = await runner.check_expiring_jobs()

    assert not result.ok
    assert "dispatch failed" in result.error
    assert result.selected == 3
    assert result.processed == 1
    assert (await load(session_factory, Job, job_1.id)).notified_expiring is True
    assert (await load(session_factory, Job, job_2.id)).notified_expiring is False
    assert (await load(session_factory, Job, job_3.id)).notified_expiring is False
    assert [n.user_id for n in await notifications_for(session_factory)] == [first.user_id]

    # Next run picks up where the failure left off
    triggers.fail_for_users.clear()
    retry = await runner.check_expiring_jobs()

    assert retry.ok
    assert retry.selected == 2
    notified = [n.user_id for n in await notifications_for(session_factory)]
    assert notified == [first.user_id, second.user_id, third.user_id]


@pytest.mark.asyncio
async def test_database_error_on_commit_keeps_earlier_rows_and_stops_the_batch(
    db, session_factory, runner, monkeypatch
) -> None:
    companies = [await make_company(db, f"co{i}", f"Company {i}") for i in range(3)]
    jobs = [await make_job(db, company, NOW + timedelta(days=1)) for company in companies]

    real_commit = AsyncSession.commit
    commits = []

    async def flaky_commit(session):
        commits.append(session)
        if len(commits) == 2:
            raise OperationalError("COMMIT", {}, Exception("database is locked"))
        await real_commit(session)

    monkeypatch.setattr(AsyncSession, "commit", flaky_commit)
    result = await runner.check_expiring_jobs()
    monkeypatch.undo()

    assert not result.ok
    assert "OperationalError" in result.error
    assert (result.selected, result.processed, result.notifications) == (3, 1, 1)
    assert (await load(session_factory, Job, jobs[0].id)).notified_expiring is True
    assert (await load(session_factory, Job, jobs[1].id)).notified_expiring is False
    assert (await load(session_factory, Job, jobs[2].id)).notified_expiring is False
    assert [n.user_id for n in await notifications_for(session_factory)] == [companies[0].user_id]


@pytest.mark.asyncio
async def test_disabled_category_still_flags_the_row(db, session_factory, runner) -> None:
    company = await make_company(db)
    job = await make_job(db, company, NOW + timedelta(days=2))
    await NotificationCategoryService().update_category_preference(db, company.user_id, "JOBS", is_enabled=False)

    result = await runner.check_expiring_jobs()

    assert result.ok
    assert (result.processed, result.notifications) == (1, 0)
    assert (await load(session_factory, Job, job.id)).notified_expiring is True
    assert await notifications_for(session_factory) == []


@pytest.mark.asyncio
async def test_deadline_reminders_go_to_every_saver(db, session_factory, runner, triggers) -> None:
    company = await make_company(db)
    job = await make_job(db, company, NOW + timedelta(days=1, hours=6), title="Backend Intern")
    ana = await make_user(db, ROLE_STUDENT, "ana")
    ben = await make_user(db, ROLE_STUDENT, "ben")
    await save_job(db, ana, job)
    await save_job(db, ben, job)

    result = await runner.send_application_deadline_reminders()

    assert result.ok
    assert result.notifications == 2
    assert {user_id for _, user_id, _ in triggers.sent} == {ana.id, ben.id}
    assert (await load(session_factory, Job, job.id)).notified_deadline is True

    [note] = await notifications_for(session_factory, ana.id)
    assert note.message == 'The application deadline for "Backend Intern" at Acme Corp is in 2 days.'


@pytest.mark.asyncio
async def test_deadline_job_without_savers_is_left_unflagged(db, session_factory, runner) -> None:
    company = await make_company(db)
    job = await make_job(db, company, NOW + timedelta(days=1))

    result = await runner.send_application_deadline_reminders()

    assert result.ok
    assert (result.selected, result.processed) == (1, 0)
    assert (await load(session_factory, Job, job.id)).notified_deadline is False


@pytest.mark.asyncio
async def test_job_stats_count_views_and_applications_once_a_week(db, session_factory, runner) -> None:
    company = await make_company(db)
    job = await make_job(db, company, NOW + timedelta(days=30), title="Designer")
    student = await make_user(db, ROLE_STUDENT, "sam")
    db.add_all([JobView(job_id=job.id, user_id=student.id) for _ in range(3)])
    db.add(JobApplication(job_id=job.id, student_user_id=student.id))
    await db.commit()

    result = await runner.send_job_posting_stats()

    assert result.ok
    [note] = await notifications_for(session_factory)
    assert note.message == 'Your job posting "Designer" has received 3 views and 1 applications.'
    assert note.meta == {"viewCount": 3, "applicationCount": 1}
    assert (await load(session_factory, Job, job.id)).last_stats_sent == NOW

    again = await runner.send_job_posting_stats()
    assert again.selected == 0


@pytest.mark.asyncio
async def test_incomplete_profiles_list_missing_fields(db, session_factory, runner) -> None:
    sam = await make_user(db, ROLE_STUDENT, "sam")
    profile = complete_profile()
    profile.update(student_description=None, student_profile_image_path="")
    student = await make_student(db, sam, **profile)
    done = await make_user(db, ROLE_STUDENT, "done")
    await make_student(db, done, **complete_profile("Done Student"))

    result = await runner.check_incomplete_profiles()

    assert result.ok
    assert result.selected == 1
    [note] = await notifications_for(session_factory)
    assert note.user_id == sam.id
    assert note.message == "Your profile is 60% complete. Missing: Description, Profile Image."
    assert note.meta["missingFields"] == ["Description", "Profile Image"]
    assert (await load(session_factory, Student, student.id)).last_profile_reminder == NOW


@pytest.mark.asyncio
async def test_meeting_reminders_cover_the_next_24_hours(db, session_factory, runner) -> None:
    student = await make_user(db, ROLE_STUDENT, "sam")
    counselor = await make_user(db, ROLE_COUNSELOR, "casey")
    today = await make_meeting(db, student, counselor, date(2025, 6, 2), time(12, 0), time(13, 0))
    early_tomorrow = await make_meeting(db, counselor, student, date(2025, 6, 3), time(8, 0), time(8, 30))
    too_late = await make_meeting(db, student, counselor, date(2025, 6, 3), time(15, 0), time(16, 0))
    not_accepted = await make_meeting(
        db, student, counselor, date(2025, 6, 2), time(14, 0), time(15, 0), status="requested"
    )

    result = await runner.send_meeting_reminders()

    assert result.ok
    assert (result.processed, result.notifications) == (2, 4)
    assert (await load(session_factory, Meeting, today.id)).reminder_sent is True
    assert (await load(session_factory, Meeting, early_tomorrow.id)).reminder_sent is True
    assert (await load(session_factory, Meeting, too_late.id)).reminder_sent is False
    assert (await load(session_factory, Meeting, not_accepted.id)).reminder_sent is False

    student_notes = await notifications_for(session_factory, student.id)
    assert student_notes[0].message == "You have a meeting with casey on June 2, 2025 at 12:00 - 13:00."
    assert student_notes[0].target_user_role == "Student"
    counselor_notes = await notifications_for(session_factory, counselor.id)
    assert counselor_notes[0].message == "You have a meeting with sam on June 2, 2025 at 12:00 - 13:00."
    assert counselor_notes[0].target_user_role == "Counselor"


@pytest.mark.asyncio
async def test_feedback_requests_for_completed_meetings(db, session_factory, runner) -> None:
    student = await make_user(db, ROLE_STUDENT, "sam")
    company = await make_company(db)
    company_user = await db.get(User, company.user_id)
    meeting = await make_meeting(
        db, student, company_user, date(2025, 6, 1), time(10, 0), time(11, 0), status="completed"
    )
    await make_meeting(db, student, company_user, date(2025, 6, 9), time(10, 0), time(11, 0), status="completed")

    result = await runner.send_meeting_feedback_requests()

    assert result.ok
    assert result.notifications == 2
    assert (await load(session_factory, Meeting, meeting.id)).feedback_request_sent is True
    [company_note] = await notifications_for(session_factory, company_user.id)
    assert company_note.message == "Please share feedback about your meeting with sam."
    assert company_note.target_user_role == "Company"


@pytest.mark.asyncio
async def test_pending_registrations_are_not_repeated_for_the_same_count(db, session_factory, runner) -> None:
    admin = await make_user(db, ROLE_ADMIN, "root")
    await make_registration(db, "a@example.com")
    await make_registration(db, "b@example.com")
    await make_registration(db, "c@example.com", status="approved")

    first = await runner.check_pending_registrations()
    second = await runner.check_pending_registrations()

    assert first.notifications == 1
    assert second.notifications == 0
    [note] = await notifications_for(session_factory, admin.id)
    assert note.message == "There are 2 registrations waiting for review."
    assert note.meta == {"count": 2}

    await make_registration(db, "d@example.com")
    third = await runner.check_pending_registrations()

    assert third.notifications == 1
    assert len(await notifications_for(session_factory, admin.id)) == 2


@pytest.mark.asyncio
async def test_no_pending_registrations_sends_nothing(db, session_factory, runner) -> None:
    await make_user(db, ROLE_ADMIN, "root")

    result = await runner.check_pending_registrations()

    assert result.ok
    assert result.selected == 0
    assert await notifications_for(session_factory) == []


@pytest.mark.asyncio
async def test_purge_removes_only_expired_conversations(db, session_factory, runner) -> None:
    owner = await make_user(db, ROLE_STUDENT, "sam")
    keeper = await make_user(db, ROLE_STUDENT, "kim")
    db.add(ChatUserPreference(user_id=owner.id, auto_delete_days=30))
    db.add(ChatUserPreference(user_id=keeper.id, auto_delete_days=None))
    old = Conversation(user_id=owner.id, title="old", updated_at=NOW - timedelta(days=40))
    fresh = Conversation(user_id=owner.id, title="fresh", updated_at=NOW - timedelta(days=5))
    untouched = Conversation(user_id=keeper.id, title="kept", updated_at=NOW - timedelta(days=400))
    db.add_all([old, fresh, untouched])
    await db.flush()
    db.add(ChatMessage(conversation_id=old.id, content="bye", is_user_message=True))
    await db.commit()

    result = await runner.purge_expired_conversations()

    assert result.ok
    assert (result.selected, result.processed) == (1, 1)
    async with session_factory() as s:
        titles = set((await s.execute(select(Conversation.title))).scalars().all())
        messages = (await s.execute(select(ChatMessage))).scalars().all()
    assert titles == {"fresh", "kept"}
    assert messages == []


@pytest.mark.asyncio
async def test_daily_bundle_twice_sends_no_duplicates(db, session_factory, runner) -> None:
    admin = await make_user(db, ROLE_ADMIN, "root")
    company = await make_company(db)
    job = await make_job(db, company, NOW + timedelta(days=1))
    student = await make_user(db, ROLE_STUDENT, "sam")
    await make_student(db, student, student_name="Sam")
    await save_job(db, student, job)
    counselor = await make_user(db, ROLE_COUNSELOR, "casey")
    await make_meeting(db, student, counselor, date(2025, 6, 1), time(10, 0), time(11, 0), status="completed")
    await make_registration(db, "new@example.com")

    first = await runner.run_all_daily_tasks()
    after_first = await notifications_for(session_factory)
    second = await runner.run_all_daily_tasks()
    after_second = await notifications_for(session_factory)

    assert [r.task for r in first] == [
        "expiringJobs",
        "deadlineReminders",
        "incompleteProfiles",
        "feedbackRequests",
        "pendingRegistrations",
        "chatCleanup",
    ]
    assert all(r.ok for r in first + second)
    # expiring + deadline + profile + 2 feedback + pending
    assert len(after_first) == 6
    assert len(after_second) == 6
    assert sum(r.notifications for r in second) == 0
    assert {n.user_id for n in after_first} == {admin.id, company.user_id, student.id, counselor.id}


@pytest.mark.asyncio
async def test_weekly_bundle_order(runner) -> None:
    results = await runner.run_all_weekly_tasks()

    assert [r.task for r in results] == ["jobStats", "meetingReminders"]
    assert all(r.ok for r in results)
