"""
Insight curation through an OpenAI-compatible chat completions endpoint.

The curator only builds the request and maps the HTTP outcome onto
``CurationError`` kinds; turning the returned text into insights is the
response parser's job.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from .errors import CurationError, CurationErrorKind
from .models import SUMMARY_MAX_CHARS, TITLE_MAX_CHARS

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY_URL = "https://ai.gateway.lovable.dev/v1"
DEFAULT_MODEL = "google/gemini-2.5-flash"

_RESPONSE_SCHEMA = (
    "{\n"
    '  "insights": [\n'
    "    {\n"
    f'      "title": "Brief title (max {TITLE_MAX_CHARS} chars)",\n'
    f'      "summary": "Concise summary of the insight (max {SUMMARY_MAX_CHARS} chars)"\n'
    "    }\n"
    "  ]\n"
    "}"
)


class InsightCurator:
    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_GATEWAY_URL,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.7,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.temperature = temperature
        self._client = client

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    def build_messages(
        self,
        text: str,
        topic_name: str,
        source_url: str,
        topic_description: Optional[str] = None,
    ) -> List[Dict[str, str]]:
        system = (
            "You are an AI curator that extracts insights from web content. "
            "Your task is to analyze content and create concise, valuable insights "
            f'related to "{topic_name}". Respond with JSON only.'
        )
        context = f"\nTopic context: {topic_description}\n" if topic_description else ""
        user = (
            f"Analyze this content from {source_url} and extract 1-2 key insights related to {topic_name}.\n"
            f"{context}\n"
            f"Content:\n{text}\n\n"
            f"Provide your response in this JSON format:\n{_RESPONSE_SCHEMA}\n\n"
            "Only include truly valuable, actionable insights. If the content is not relevant "
            "or doesn't contain useful insights, return an empty insights array."
        )
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]

    def build_payload(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        return {"model": self.model, "messages": messages, "temperature": self.temperature}

    async def curate(
        self,
        text: str,
        topic_name: str,
        source_url: str,
        topic_description: Optional[str] = None,
    ) -> str:
        """
        Ask the generative service for insights and return its raw message text.
        Raises CurationError with a kind describing the failure.
        """
        payload = self.build_payload(self.build_messages(text, topic_name, source_url, topic_description))
        if self._client is not None:
            response = await self._post(self._client, payload)
        else:
            async with httpx.AsyncClient() as client:
                response = await self._post(client, payload)
        return self._read_content(response)

    async def _post(self, client: httpx.AsyncClient, payload: Dict[str, Any]) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        try:
            return await client.post(self.endpoint, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise CurationError(
                CurationErrorKind.UPSTREAM_ERROR,
                f"Failed to reach AI gateway: {exc.__class__.__name__}: {exc}",
            ) from exc

    def _read_content(self, response: httpx.Response) -> str:
        status = response.status_code
        if status == 429:
            raise CurationError(
                CurationErrorKind.RATE_LIMITED,
                "Rate limit exceeded. Please try again later.",
                status_code=status,
            )
        if status == 402:
            raise CurationError(
                CurationErrorKind.PAYMENT_REQUIRED,
                "Payment required. Please add credits to your workspace.",
                status_code=status,
            )
        if not response.is_success:
            logger.error("AI gateway error: %s %s", status, response.text[:500])
            raise CurationError(
                CurationErrorKind.UPSTREAM_ERROR,
                f"Failed to generate insights with AI (HTTP {status})",
                status_code=status,
            )

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            content = None
        if not isinstance(content, str) or not content.strip():
            raise CurationError(
                CurationErrorKind.EMPTY_RESPONSE,
                "No content received from AI",
                status_code=status,
            )
        logger.debug("AI response received (%d chars)", len(content))
        return content
