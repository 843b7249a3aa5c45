from openai import AsyncOpenAI
from typing import AsyncIterator, Dict, List, Optional

from careerhub.config import get_settings
from careerhub.utils.logger import get_logger
from careerhub.utils.metrics import track_duration

logger = get_logger("ai")

# provider -> (base url, model)
PROVIDERS = {
    "sambanova": ("https://api.sambanova.ai/v1", "DeepSeek-V3-0324"),
    "deepseek": ("https://api.deepseek.com", "deepseek-chat"),
}

MAX_TOKENS = 4000
TEMPERATURE = 1

SYSTEM_PROMPT = """You are CareerHub AI, the assistant of a career guidance platform used by students, career counselors and companies.

Your core functions:
1. Answer FAQs about career guidance services, platform features (job applications, profile management, finding resources), career paths and professional development.
2. Surface platform content: job postings, meetings and applications when asked.
3. Navigation assistance: help users find sections or information on the platform.
4. Referral: when a question needs detailed, personalized counseling, explain that you give initial guidance and direct the user to book a meeting with a human career counselor through the platform.
5. Job search: help users find relevant openings from their interests, skills or the job titles they ask about.

You may be given real-time data from the platform database: the user's profile, recent conversations, relevant job listings, upcoming meetings and job applications.

When responding to job-related queries:
1. Use the provided job listings to give specific, accurate information.
2. Include the job title, company, location and application deadline.
3. For students, prioritize jobs that match their career pathways.
4. If a job type is not in the provided data, say so and suggest checking the job listings section of the platform.

Tone: helpful, friendly, supportive, professional and concise."""

CONTEXT_HEADER = (
    "\n\n### DATABASE CONTEXT ###\n"
    "The following information comes from the platform database in real time:\n\n"
)
CONTEXT_FOOTER = (
    "\n\n### END DATABASE CONTEXT ###\n\n"
    "Use the database context above for personalized, accurate answers. When asked about jobs, "
    "meetings or applications, refer to this information instead of giving generic responses."
)


def get_fallback_response(message: str) -> str:
    """Keyword responder used when no provider is reachable."""
    text = message.lower()

    if "hello" in text or "hi" in text:
        return "Hello! I'm CareerHub AI, your career guidance assistant. How can I help you today?"
    if "career" in text or "job" in text:
        return (
            "Career development is a lifelong journey. Consider your interests, skills, and values when "
            "exploring career options. Would you like some specific advice about a particular career field?"
        )
    if "resume" in text or "cv" in text:
        return (
            "A strong resume highlights your achievements, skills, and experience relevant to the job you're "
            "applying for. Make sure to tailor it for each application and use action verbs to describe your "
            "accomplishments."
        )
    if "interview" in text:
        return (
            "Preparing for interviews involves researching the company, practicing common questions, preparing "
            "examples of your achievements, and having questions ready to ask the interviewer. Would you like "
            "specific interview tips?"
        )
    if "education" in text or "degree" in text or "study" in text:
        return (
            "Education is valuable for career advancement. Consider your career goals when choosing educational "
            "paths. Remember that formal degrees, certifications, and self-learning all have their place "
            "depending on your field."
        )
    return (
        "I'm here to help with career guidance and professional development. Feel free to ask about job "
        "searching, resume writing, interview preparation, or career planning."
    )


def build_clients() -> Dict[str, AsyncOpenAI]:
    """One OpenAI-compatible client per provider that has an API key."""
    settings = get_settings()
    keys = {"sambanova": settings.sambanova_api_key, "deepseek": settings.deepseek_api_key}

    clients = {}
    for name, api_key in keys.items():
        if api_key:
            base_url, _ = PROVIDERS[name]
            clients[name] = AsyncOpenAI(api_key=api_key, base_url=base_url)
    if not clients:
        logger.warning("ai.no_api_keys")
    return clients


class AIService:
    """Chat completions over SambaNova or DeepSeek, with fallback between them."""

    def __init__(self, clients: Optional[Dict[str, AsyncOpenAI]] = None):
        self.clients = build_clients() if clients is None else clients
        if "sambanova" in self.clients:
            self.provider = "sambanova"
        elif "deepseek" in self.clients:
            self.provider = "deepseek"
        else:
            self.provider = "sambanova"

    @property
    def use_ai(self) -> bool:
        return bool(self.clients)

    def set_provider(self, provider: str) -> None:
        if provider in PROVIDERS:
            self.provider = provider
        else:
            logger.warning("ai.invalid_provider", extra={"provider": provider, "default": self.provider})

    def resolve_provider(self, provider: Optional[str] = None) -> str:
        """Requested provider if usable, otherwise the one that has a key."""
        active = provider if provider in PROVIDERS else self.provider
        if provider and provider not in PROVIDERS:
            logger.warning("ai.invalid_provider", extra={"provider": provider, "default": self.provider})

        alternate = self._alternate(active)
        if active not in self.clients and alternate in self.clients:
            logger.info("ai.provider_switched", extra={"requested": active, "provider": alternate})
            return alternate
        return active

    @staticmethod
    def _alternate(provider: str) -> str:
        return "deepseek" if provider == "sambanova" else "sambanova"

    def build_messages(
        self,
        message: str,
        history: Optional[List[dict]] = None,
        db_context: Optional[str] = None,
    ) -> List[dict]:
        system_prompt = SYSTEM_PROMPT
        if db_context:
            system_prompt += CONTEXT_HEADER + db_context + CONTEXT_FOOTER

        messages = [{"role": "system", "content": system_prompt}]
        for entry in history or []:
            messages.append({
                "role": "user" if entry.get("isUser") else "assistant",
                "content": entry.get("content") or "",
            })
        messages.append({"role": "user", "content": message})
        return messages

    async def _complete(self, provider: str, messages: List[dict]) -> str:
        _, model = PROVIDERS[provider]
        async with track_duration("ai", provider):
            completion = await self.clients[provider].chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=MAX_TOKENS,
                temperature=TEMPERATURE,
            )
        return (completion.choices[0].message.content or "").strip()

    async def _open_stream(self, provider: str, messages: List[dict]):
        _, model = PROVIDERS[provider]
        async with track_duration("ai", f"{provider}_stream"):
            return await self.clients[provider].chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=MAX_TOKENS,
                temperature=TEMPERATURE,
                stream=True,
            )

    def _candidates(self, provider: Optional[str]) -> List[str]:
        active = self.resolve_provider(provider)
        return [p for p in (active, self._alternate(active)) if p in self.clients]

    async def send_message(
        self,
        message: str,
        history: Optional[List[dict]] = None,
        provider: Optional[str] = None,
        db_context: Optional[str] = None,
    ) -> str:
        """Full reply text. Never raises for provider errors."""
        messages = self.build_messages(message, history, db_context)

        for candidate in self._candidates(provider):
            try:
                return await self._complete(candidate, messages)
            except Exception as e:
                logger.warning("ai.provider_failed", extra={"provider": candidate, "error": str(e)[:200]})

        logger.info("ai.fallback_response")
        return get_fallback_response(message)

    async def stream_message(
        self,
        message: str,
        history: Optional[List[dict]] = None,
        provider: Optional[str] = None,
        db_context: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """
        Yield reply chunks as they arrive.

        Falls back to the other provider when opening the stream fails; errors
        after the first chunk propagate to the caller.
        """
        messages = self.build_messages(message, history, db_context)

        for candidate in self._candidates(provider):
            try:
                stream = await self._open_stream(candidate, messages)
            except Exception as e:
                logger.warning("ai.provider_failed", extra={"provider": candidate, "error": str(e)[:200]})
                continue

            async for chunk in stream:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    yield content
            return

        logger.info("ai.fallback_response")
        yield get_fallback_response(message)
