"""
Gemini AI classifier implementation.
"""

import google.generativeai as genai

from mailroom.classifiers.base import BaseClassifier
from mailroom.classifiers.prompts import mail as mail_prompts
from mailroom.config import settings
from mailroom.core.errors import ClassificationUnavailable
from mailroom.core.logging import get_logger
from mailroom.core.models import Category

log = get_logger(__name__)


class GeminiClassifier(BaseClassifier):
    """Gemini AI-based mail classifier."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
    ):
        self.api_key = api_key or settings.gemini_api_key
        self.model_name = model or settings.gemini_model

        if not self.api_key:
            raise ValueError("GEMINI_API_KEY is required")

        genai.configure(api_key=self.api_key)
        self.model = genai.GenerativeModel(self.model_name)

    async def request_label(self, document_title: str, sender_name: str) -> str:
        """
        Classify a document using Gemini AI.

        A blocked prompt is a declined classification and maps to Other.
        Everything else that goes wrong makes classification unavailable.
        """
        prompt = mail_prompts.PROMPT.format(sender=sender_name, title=document_title)

        try:
            response = await self.model.generate_content_async(prompt)
            label = (response.text or "").strip()
            log.info("mail_classified", sender=sender_name, category=label)
            return label

        except genai.types.BlockedPromptException as e:
            log.warning("gemini_blocked", error=str(e), sender=sender_name)
            return Category.OTHER.value

        except Exception as e:
            error_str = str(e).lower()
            if any(x in error_str for x in ["rate", "429", "quota"]):
                log.error("gemini_rate_limit", error=str(e))
            elif any(x in error_str for x in ["api key", "auth", "401", "403"]):
                log.error("gemini_auth_error", error=str(e))
            else:
                log.error("gemini_error", error=str(e), sender=sender_name)
            raise ClassificationUnavailable(f"Gemini classification failed: {e}") from e
