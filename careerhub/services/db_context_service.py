"""
Per-user database context for AI chat prompts.

Pulls the user's profile, recent AI conversations, relevant jobs,
upcoming meetings and job applications, and renders them as
"## SECTION ##" blocks the assistant can quote from.
"""
import re
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from sqlalchemy.orm import aliased
from typing import Optional, List, Dict, Any

from careerhub.models.ai_chat import Conversation, ChatMessage
from careerhub.models.company import Company
from careerhub.models.job import Job, JobApplication
from careerhub.models.meeting import Meeting
from careerhub.models.student import Student
from careerhub.models.user import User, ROLE_STUDENT, ROLE_COMPANY
from careerhub.utils.clock import utcnow
from careerhub.utils.logger import get_logger

logger = get_logger("ai.context")

INDUSTRY_TERMS = [
    "banking", "finance", "accounting", "marketing", "sales", "engineering",
    "software", "development", "IT", "healthcare", "medical", "legal",
    "education", "teaching", "hospitality", "retail", "manufacturing",
    "construction", "design", "media", "communications", "human resources",
    "HR", "administration", "customer service", "data", "science", "research",
]

KEYWORD_TERMS = INDUSTRY_TERMS + [
    "analyst", "manager", "director", "assistant", "specialist", "coordinator",
    "executive", "associate", "consultant", "technician", "developer", "engineer",
    "architect", "designer", "writer", "editor", "full-time", "part-time", "contract",
    "internship", "entry-level", "junior", "senior", "lead", "head", "chief",
]

_INDUSTRY_RE = re.compile(r"\b(" + "|".join(INDUSTRY_TERMS) + r")\b", re.IGNORECASE)
_KEYWORD_RE = re.compile(r"\b(" + "|".join(KEYWORD_TERMS) + r")\b", re.IGNORECASE)

_JOB_TERM_RE = re.compile(
    r"jobs?|career|position|opening|vacancy|employment|hire|hiring|work|opportunity|role|apply"
    r"|application|interview|recruit",
    re.IGNORECASE,
)
_QUESTION_RE = re.compile(
    r"are there|is there|do you have|can i find|looking for|searching for|interested in|available"
    r"|show me|tell me about|any|list|what|where|how|related to|in the field of|find|search",
    re.IGNORECASE,
)

_QUESTION_PHRASES_RE = re.compile(
    r"are there|is there|do you have|can i find|looking for|searching for|interested in|available"
    r"|show me|tell me about|any",
    re.IGNORECASE,
)
_JOB_WORDS_RE = re.compile(r"jobs?|career|position|opening|vacancy|employment|hire|hiring|work|opportunity", re.IGNORECASE)
_FILLER_RE = re.compile(r"\b(a|an|the|in|on|at|for|with|about|of|to|by|as|if|or|and|but)\b", re.IGNORECASE)


def is_job_search_query(message: str) -> bool:
    """
    A job search is a job term plus a question phrase, or an industry term
    plus either of those.
    """
    if not message:
        return False

    has_job_term = bool(_JOB_TERM_RE.search(message))
    has_question = bool(_QUESTION_RE.search(message))
    has_industry = bool(_INDUSTRY_RE.search(message))

    return (has_job_term and has_question) or (has_industry and (has_job_term or has_question))


def extract_job_keywords(message: str) -> str:
    """Search keywords: known industry and role terms first, then what's left of the sentence."""
    if not message:
        return ""

    terms = []
    for match in _KEYWORD_RE.findall(message):
        term = match.lower()
        if term not in terms:
            terms.append(term)

    cleaned = _QUESTION_PHRASES_RE.sub("", message)
    cleaned = _JOB_WORDS_RE.sub("", cleaned)
    cleaned = _FILLER_RE.sub(" ", cleaned)
    cleaned = re.sub(r"[^\w\s]", " ", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()

    if not terms:
        return cleaned

    rest = [word for word in cleaned.split(" ") if word and word.lower() not in terms]
    return " ".join(terms + rest)


def _truncate(text: Optional[str], length: int) -> str:
    if not text:
        return ""
    return text[:length] + "..." if len(text) > length else text


def _pathways(value) -> List[str]:
    # Stored as a JSON list; older rows hold a comma separated string
    if not value:
        return []
    if isinstance(value, list):
        return [str(v) for v in value]
    return [item.strip() for item in str(value).split(",") if item.strip()]


class DbContextService:

    async def get_user_context(self, db: AsyncSession, user_id: int) -> Optional[Dict[str, Any]]:
        user = await db.get(User, user_id)
        if user is None:
            return None

        profile = None
        if user.role_id == ROLE_STUDENT:
            profile = await self.get_student_profile(db, user_id)
        elif user.role_id == ROLE_COMPANY:
            profile = await self.get_company_profile(db, user_id)

        return {
            "user": {"id": user.id, "username": user.username, "email": user.email, "role": user.role},
            "profile": profile,
        }

    async def get_student_profile(self, db: AsyncSession, user_id: int) -> Optional[dict]:
        result = await db.execute(select(Student).where(Student.user_id == user_id))
        student = result.scalars().first()
        if student is None:
            return None
        return {
            "id": student.id,
            "name": student.student_name,
            "description": student.student_description,
            "category": student.student_category,
            "careerPathways": _pathways(student.student_career_pathways),
        }

    async def get_company_profile(self, db: AsyncSession, user_id: int) -> Optional[dict]:
        result = await db.execute(select(Company).where(Company.user_id == user_id))
        company = result.scalars().first()
        if company is None:
            return None
        return {
            "id": company.id,
            "name": company.company_name,
            "description": company.company_description,
            "website": company.company_website,
        }

    async def get_recent_chat_history(self, db: AsyncSession, user_id: int, limit: int = 3) -> List[dict]:
        conversations = (await db.execute(
            select(Conversation)
            .where(Conversation.user_id == user_id)
            .order_by(Conversation.updated_at.desc())
            .limit(limit)
        )).scalars().all()

        recent = []
        for conversation in conversations:
            messages = (await db.execute(
                select(ChatMessage)
                .where(ChatMessage.conversation_id == conversation.id)
                .order_by(ChatMessage.timestamp.desc(), ChatMessage.id.desc())
                .limit(5)
            )).scalars().all()
            recent.append({
                "id": conversation.id,
                "title": conversation.title,
                "recentMessages": [
                    {"content": m.content, "isUserMessage": bool(m.is_user_message)}
                    for m in reversed(messages)
                ],
            })
        return recent

    def _open_jobs(self):
        return (
            select(Job, Company.company_name)
            .join(Company, Job.company_id == Company.id)
            .where(Job.status == "active", Job.end_date >= utcnow())
            .order_by(Job.created_at.desc(), Job.id.desc())
        )

    @staticmethod
    def _job_dict(job: Job, company_name: str) -> dict:
        return {
            "id": job.id,
            "title": job.title,
            "company": company_name,
            "location": job.location,
            "type": job.job_type,
            "endDate": job.end_date.date().isoformat() if job.end_date else None,
            "description": _truncate(job.description, 150),
        }

    async def get_related_jobs(self, db: AsyncSession, user_id: int, keywords: str = "", limit: int = 5) -> List[dict]:
        """
        Open jobs matching the search keywords and, for students, their career
        pathways. Companies get their own postings. Falls back to the latest jobs.
        """
        user = await db.get(User, user_id)
        if user is None:
            return []

        if user.role_id == ROLE_COMPANY:
            rows = (await db.execute(
                select(Job, Company.company_name)
                .join(Company, Job.company_id == Company.id)
                .where(Company.user_id == user_id)
                .order_by(Job.created_at.desc(), Job.id.desc())
                .limit(limit)
            )).all()
            return [self._job_dict(job, name) for job, name in rows]

        terms = [word for word in keywords.split() if len(word) > 1]
        if user.role_id == ROLE_STUDENT:
            profile = await self.get_student_profile(db, user_id)
            if profile:
                terms += profile["careerPathways"]

        rows = []
        if terms:
            conditions = []
            for term in terms:
                pattern = f"%{term}%"
                conditions += [Job.title.ilike(pattern), Job.description.ilike(pattern), Job.job_type.ilike(pattern)]
            rows = (await db.execute(self._open_jobs().where(or_(*conditions)).limit(limit))).all()

        if not rows:
            rows = (await db.execute(self._open_jobs().limit(limit))).all()

        return [self._job_dict(job, name) for job, name in rows]

    async def get_user_meetings(self, db: AsyncSession, user_id: int, limit: int = 3) -> List[dict]:
        requestor = aliased(User)
        recipient = aliased(User)
        now = utcnow()
        rows = (await db.execute(
            select(Meeting, requestor.username, recipient.username)
            .join(requestor, Meeting.requestor_id == requestor.id)
            .join(recipient, Meeting.recipient_id == recipient.id)
            .where(
                or_(Meeting.requestor_id == user_id, Meeting.recipient_id == user_id),
                Meeting.meeting_date >= now.date(),
            )
            .order_by(Meeting.meeting_date, Meeting.start_time)
        )).all()

        meetings = []
        for meeting, requestor_name, recipient_name in rows:
            if meeting.starts_at < now:
                continue
            is_requestor = meeting.requestor_id == user_id
            meetings.append({
                "id": meeting.id,
                "title": meeting.meeting_title,
                "description": meeting.description,
                "date": meeting.meeting_date.isoformat(),
                "time": meeting.time_range,
                "status": meeting.status,
                "role": "requestor" if is_requestor else "recipient",
                "otherPartyName": recipient_name if is_requestor else requestor_name,
            })
            if len(meetings) == limit:
                break
        return meetings

    async def get_user_job_applications(self, db: AsyncSession, user_id: int, limit: int = 5) -> List[dict]:
        user = await db.get(User, user_id)
        if user is None or user.role_id != ROLE_STUDENT:
            return []

        rows = (await db.execute(
            select(JobApplication, Job.title, Company.company_name)
            .join(Job, JobApplication.job_id == Job.id)
            .join(Company, Job.company_id == Company.id)
            .where(JobApplication.student_user_id == user_id)
            .order_by(JobApplication.submitted_at.desc())
            .limit(limit)
        )).all()
        return [application.to_dict(title, company) for application, title, company in rows]

    async def build_context(self, db: AsyncSession, user_id: int, message: str) -> Optional[Dict[str, Any]]:
        """Everything the assistant gets to see for one chat turn."""
        context = await self.get_user_context(db, user_id)
        if context is None:
            return None

        if is_job_search_query(message):
            keywords = extract_job_keywords(message)
            logger.debug("context.job_query", extra={"keywords": keywords})
            jobs = await self.get_related_jobs(db, user_id, keywords, 5)
        else:
            jobs = await self.get_related_jobs(db, user_id, "", 3)

        context.update({
            "recentConversations": await self.get_recent_chat_history(db, user_id, 2),
            "jobs": jobs,
            "meetings": await self.get_user_meetings(db, user_id, 2),
            "jobApplications": await self.get_user_job_applications(db, user_id, 3),
        })
        return context

    def format_context_for_prompt(self, context: Optional[Dict[str, Any]]) -> str:
        if not context:
            return ""

        lines = []
        user = context.get("user")
        if user:
            lines += ["## USER INFORMATION ##", f"User ID: {user['id']}", f"Username: {user['username']}", f"Role: {user['role']}"]

        profile = context.get("profile")
        if profile and user:
            lines += ["", "## PROFILE INFORMATION ##"]
            if user["role"] == "Student":
                lines.append(f"Student Name: {profile.get('name')}")
                lines.append(f"Category: {profile.get('category')}")
                if profile.get("description"):
                    lines.append(f"Description: {profile['description']}")
                if profile.get("careerPathways"):
                    lines.append(f"Career Pathways: {', '.join(profile['careerPathways'])}")
            elif user["role"] == "Company":
                lines.append(f"Company Name: {profile.get('name')}")
                if profile.get("description"):
                    lines.append(f"Description: {profile['description']}")

        applications = context.get("jobApplications") or []
        if applications:
            lines += ["", "## JOB APPLICATIONS ##"]
            for i, app in enumerate(applications, 1):
                lines.append(f"{i}. {app['jobTitle']} at {app['companyName']}")
                lines.append(f"   Status: {app['status']}")
                if app.get("submittedAt"):
                    lines.append(f"   Applied: {app['submittedAt'][:10]}")

        meetings = context.get("meetings") or []
        if meetings:
            lines += ["", "## UPCOMING MEETINGS ##"]
            for i, meeting in enumerate(meetings, 1):
                lines.append(f"{i}. {meeting['title']}")
                lines.append(f"   With: {meeting['otherPartyName']}")
                lines.append(f"   When: {meeting['date']} {meeting['time']}")
                lines.append(f"   Status: {meeting['status']}")
                if meeting.get("description"):
                    lines.append(f"   Description: {_truncate(meeting['description'], 100)}")

        jobs = context.get("jobs") or []
        if jobs:
            lines += ["", "## RELEVANT JOBS ##"]
            for i, job in enumerate(jobs, 1):
                lines.append(f"{i}. {job['title']} at {job['company']}")
                lines.append(f"   Location: {job['location']}")
                lines.append(f"   Type: {job['type']}")
                if job.get("endDate"):
                    lines.append(f"   End Date: {job['endDate']}")
                if job.get("description"):
                    lines.append(f"   Description: {job['description']}")

        conversations = context.get("recentConversations") or []
        if conversations:
            lines += ["", "## RECENT CONVERSATIONS ##"]
            for i, conversation in enumerate(conversations, 1):
                lines.append(f'Conversation {i}: "{conversation["title"]}"')
                for message in conversation["recentMessages"]:
                    role = "User" if message["isUserMessage"] else "AI"
                    lines.append(f"{role}: {_truncate(message['content'], 100)}")

        return "\n".join(lines)
