"""
Document summaries for scanned mail, using Gemini Vision.

The PDF is fetched, its first pages are rendered to images and sent to the
model together with the summary prompt.
"""

import asyncio

import fitz  # PyMuPDF
import google.generativeai as genai
import httpx
from PIL import Image

from mailroom.classifiers.prompts import summary as summary_prompts
from mailroom.config import settings
from mailroom.core.logging import get_logger

log = get_logger(__name__)

SUMMARY_UNAVAILABLE = "Summary unavailable."


class DocumentSummarizer:
    """Summarizes scanned mail PDFs."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key or settings.gemini_api_key
        self.model_name = model or settings.gemini_model

        if not self.api_key:
            raise ValueError("GEMINI_API_KEY is required")

        genai.configure(api_key=self.api_key)
        self.model = genai.GenerativeModel(self.model_name)
        self._client = httpx.AsyncClient(
            timeout=settings.summary_fetch_timeout_seconds,
            transport=transport,
            follow_redirects=True,
        )

    async def summarize(self, pdf_url: str) -> str:
        """
        Summarize the PDF at a URL.

        Returns SUMMARY_UNAVAILABLE when the file cannot be fetched or read,
        or the model gives no answer.
        """
        try:
            response = await self._client.get(pdf_url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            log.error("summary_fetch_error", url=pdf_url, error=str(e))
            return SUMMARY_UNAVAILABLE

        images = await asyncio.to_thread(self._pdf_to_images, response.content)
        if not images:
            log.warning("summary_pdf_unreadable", url=pdf_url)
            return SUMMARY_UNAVAILABLE

        try:
            result = await self.model.generate_content_async([summary_prompts.PROMPT, *images])
            summary = (result.text or "").strip()
        except Exception as e:
            log.error("summary_model_error", error=str(e))
            return SUMMARY_UNAVAILABLE

        log.info("document_summarized", pages=len(images), length=len(summary))
        return summary or SUMMARY_UNAVAILABLE

    def _pdf_to_images(self, pdf_data: bytes) -> list[Image.Image]:
        """Render the first pages of a PDF for the model."""
        images = []
        try:
            doc = fitz.open(stream=pdf_data, filetype="pdf")
            for page_num in range(min(len(doc), settings.summary_max_pages)):
                pix = doc[page_num].get_pixmap(dpi=150)
                images.append(Image.frombytes("RGB", [pix.width, pix.height], pix.samples))
            doc.close()
        except Exception as e:
            log.error("pdf_to_image_error", error=str(e))
        return images

    async def aclose(self) -> None:
        await self._client.aclose()
