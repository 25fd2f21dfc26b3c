"""
DeepSeek API Client

DeepSeek uses OpenAI-compatible API, so we use the openai library.
It backs the portal assistant; when no API key is configured the
chatbot answers from its keyword responses instead.
"""
import logging
from typing import Optional

from openai import OpenAI
from app.core.config import get_settings

logger = logging.getLogger(__name__)

ASSISTANT_PROMPT = """You are the help assistant of a university student portal.
The portal covers fee payments, library borrowing, exam timetables and results,
hostel rooms and service requests, placements and notifications.
Answer in at most four short sentences and point the student to the relevant
portal section. If you do not know something about the student's own records,
tell them where in the portal to look instead of guessing."""


class DeepSeekClient:
    """
    Thin wrapper over the chat completions endpoint.
    """

    def __init__(self, api_key: str, base_url: str):
        self.client = OpenAI(api_key=api_key, base_url=base_url)
        # Use the cheapest model
        self.model = "deepseek-chat"

    def _call_api(self, system_prompt: str, user_content: str, max_tokens: int = 300) -> str:
        """
        Internal method to call DeepSeek API.
        Returns raw text response.
        """
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content}
            ],
            max_tokens=max_tokens,
            temperature=0.3
        )
        return response.choices[0].message.content

    def answer(self, message: str, context: Optional[dict] = None) -> str:
        """Portal-assistant reply to one student message."""
        content = message
        if context:
            details = ", ".join(f"{key}: {value}" for key, value in context.items())
            content = f"{message}\n\n(Student context - {details})"
        return self._call_api(ASSISTANT_PROMPT, content).strip()

    def test_connection(self) -> bool:
        """Test if DeepSeek API is reachable."""
        try:
            response = self._call_api(
                "You are a test assistant.",
                "Reply with exactly: OK",
                max_tokens=10
            )
            return "OK" in response.upper()
        except Exception as e:
            logger.error(f"DeepSeek connection failed: {e}")
            return False


# Singleton instance
_deepseek_client: Optional[DeepSeekClient] = None


def get_deepseek_client() -> Optional[DeepSeekClient]:
    """Get or create DeepSeek client (singleton pattern). None without an API key."""
    global _deepseek_client
    settings = get_settings()
    if not settings.deepseek_api_key:
        return None
    if _deepseek_client is None:
        _deepseek_client = DeepSeekClient(settings.deepseek_api_key, settings.deepseek_base_url)
    return _deepseek_client
