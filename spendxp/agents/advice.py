"""
Advice Agents for SpendXP

DESIGN DECISION: The coach and the investment analyst are opaque text
services. They receive a prompt and return prose; nothing they say is
parsed or fed back into the ledger.

CRITICAL BOUNDARIES:

1. COACH AGENT:
   - CAN: Explain money concepts to a teenager in plain language
   - CANNOT: Read or change balances, xp, goals or quests

2. ANALYST AGENT:
   - CAN: Describe a ticker or an account by name
   - CANNOT: See the user's holdings beyond the name it is asked about
   - MUST: Respect the per-session cooldown between requests

Both agents wrap every provider failure in AdviceServiceFailure, whose
message is safe to show to the user as-is.
"""

import time
from typing import Callable, Optional

import google.generativeai as genai

from spendxp.config import get_settings
from spendxp.config.settings import GeminiSettings
from spendxp.ledger.investments import analysis_subject
from spendxp.models.finance import Investment


COACH_SYSTEM_INSTRUCTION = (
    "You are a friendly and cool financial coach for teenagers. Your name is 'XP'. "
    "Explain financial concepts in a simple, relatable way using analogies they "
    "would understand (like gaming, social media, or snacks). Keep your answers "
    "short, engaging, and easy to read. Use emojis to make it fun. Always be "
    "encouraging and positive."
)

COACH_ERROR_MESSAGE = "Oops! Something went wrong talking to my brain. Maybe try again?"
ANALYST_ERROR_MESSAGE = (
    "Oops! Couldn't fetch the market data right now. My brain circuits are a bit fried 🔌"
)
RATE_LIMIT_MESSAGE = "Please wait a few seconds before requesting another analysis."


class AdviceServiceFailure(Exception):
    """The advice provider failed; `user_message` is safe to display."""

    def __init__(self, user_message: str, cause: Optional[BaseException] = None):
        self.user_message = user_message
        self.cause = cause
        super().__init__(user_message)


class AnalysisRateLimited(Exception):
    """An analysis was requested before the cooldown elapsed."""

    def __init__(self, retry_after: float):
        self.retry_after = retry_after
        super().__init__(RATE_LIMIT_MESSAGE)


def build_analyst_prompt(subject: str) -> str:
    return f"""Act as a savvy financial analyst for a teenager.
Analyze the company or asset: "{subject}".
Please provide the following in a fun, engaging, and easy-to-understand format:
1. 🏢 **What is it?**: Explain what they do in 1 simple sentence.
2. 📰 **The Latest**: Summarize recent news or quarterly report highlights simply (Are they winning or losing right now?).
3. 🐂 **Bull Case**: 1 strong reason why the price might go UP.
4. 🐻 **Bear Case**: 1 strong reason why the price might go DOWN.

Use emojis and keep it short!"""


class CoachAgent:
    """
    The in-app money coach.

    RESPONSIBILITIES:
    - Answer free-form questions in the coach persona

    BOUNDARIES:
    - Stateless: each question is answered on its own
    """

    def __init__(self, settings: Optional[GeminiSettings] = None, model=None):
        self._settings = settings or get_settings().gemini
        self._model = model or self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        return genai.GenerativeModel(
            model_name=self._settings.model_name,
            system_instruction=COACH_SYSTEM_INSTRUCTION,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            },
        )

    async def ask(self, question: str) -> str:
        """
        Ask the coach a question.

        Raises:
            ValueError: If the question is blank
            AdviceServiceFailure: If the provider fails or returns nothing
        """
        if not question or not question.strip():
            raise ValueError("Please enter a question.")
        try:
            response = await self._model.generate_content_async(question.strip())
            text = response.text.strip()
        except Exception as e:
            raise AdviceServiceFailure(COACH_ERROR_MESSAGE, e) from e
        if not text:
            raise AdviceServiceFailure(COACH_ERROR_MESSAGE)
        return text


class AnalystAgent:
    """
    Short teen-friendly write-ups of an investment.

    One agent instance belongs to one session; the cooldown is measured from
    the last request that was actually sent.
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        model=None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._settings = settings or get_settings().gemini
        self._model = model or self._configure_genai()
        self._clock = clock
        self._last_request: Optional[float] = None

    def _configure_genai(self):
        genai.configure(api_key=self._settings.api_key)
        return genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "max_output_tokens": self._settings.max_tokens,
            },
        )

    def _check_cooldown(self) -> float:
        now = self._clock()
        if self._last_request is not None:
            elapsed = now - self._last_request
            cooldown = self._settings.analysis_cooldown_seconds
            if elapsed < cooldown:
                raise AnalysisRateLimited(retry_after=cooldown - elapsed)
        return now

    async def analyze(self, investment: Investment) -> str:
        """
        Analyze the ticker (or account name) of an investment.

        Raises:
            AnalysisRateLimited: If called again within the cooldown
            AdviceServiceFailure: If the provider fails
        """
        self._last_request = self._check_cooldown()
        prompt = build_analyst_prompt(analysis_subject(investment))
        try:
            response = await self._model.generate_content_async(prompt)
            text = response.text.strip()
        except Exception as e:
            raise AdviceServiceFailure(ANALYST_ERROR_MESSAGE, e) from e
        if not text:
            raise AdviceServiceFailure(ANALYST_ERROR_MESSAGE)
        return text
