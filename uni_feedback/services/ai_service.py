import hashlib
import json
import logging

import requests
from sqlalchemy.orm import Session

from uni_feedback.config import settings
from uni_feedback.models.ai_categorization_cache import AiCategorizationCache
from uni_feedback.utils.dates import utcnow, count_words

logger = logging.getLogger("app.ai")

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"

SYSTEM_PROMPT = (
    "You are a feedback analyzer that categorizes student course reviews into specific topics: "
    "teaching quality, assessment methods, study materials, and course tips."
)

CATEGORY_SCHEMA = {
    "type": "object",
    "properties": {
        "hasTeaching": {
            "type": "boolean",
            "description": "Mentions professor, teaching style, lecture quality, engagement, office hours, or responsiveness",
        },
        "hasAssessment": {
            "type": "boolean",
            "description": "Mentions grading, exams, projects, fairness, deadlines, workload, or difficulty of tests",
        },
        "hasMaterials": {
            "type": "boolean",
            "description": "Mentions slides, textbooks, past exams, practice exercises, or specific study resources",
        },
        "hasTips": {
            "type": "boolean",
            "description": "Mentions specific advice for future students, insider tips, or things to know before starting",
        },
    },
    "required": ["hasTeaching", "hasAssessment", "hasMaterials", "hasTips"],
    "additionalProperties": False,
}


class AIServiceError(Exception):
    pass


def empty_analysis(word_count: int = 0) -> dict:
    return {
        "has_teaching": False,
        "has_assessment": False,
        "has_materials": False,
        "has_tips": False,
        "word_count": word_count,
    }


def comment_hash(comment: str) -> str:
    normalized = " ".join(comment.lower().split())
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


class AIService:
    """Feedback categorization through OpenRouter, with a DB cache keyed by comment hash."""

    def __init__(self, db: Session, api_key: str = None, timeout: int = 30):
        self.db = db
        self.api_key = api_key if api_key is not None else settings.OPENROUTER_API_KEY
        self.timeout = timeout

    def _call_openrouter(self, payload: dict) -> dict:
        if not self.api_key:
            raise AIServiceError("OPENROUTER_API_KEY not configured")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": settings.WEBSITE_URL,
            "X-Title": "Uni Feedback",
        }
        try:
            resp = requests.post(OPENROUTER_URL, headers=headers, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise AIServiceError(f"OpenRouter request failed: {e}") from e

        if resp.status_code != 200:
            raise AIServiceError(f"OpenRouter API error: {resp.status_code} - {resp.text[:500]}")
        return resp.json()

    def _request_categories(self, comment: str) -> dict:
        payload = {
            "model": settings.OPENROUTER_MODEL,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": f"Analyze this course feedback and determine which categories it discusses:\n\n{comment}",
                },
            ],
            "response_format": {
                "type": "json_schema",
                "json_schema": {"name": "feedback_categorization", "strict": True, "schema": CATEGORY_SCHEMA},
            },
        }
        data = self._call_openrouter(payload)

        try:
            content = json.loads(data["choices"][0]["message"]["content"])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise AIServiceError(f"OpenRouter returned unexpected response format: {data!r}") from e

        return {
            "has_teaching": bool(content.get("hasTeaching", False)),
            "has_assessment": bool(content.get("hasAssessment", False)),
            "has_materials": bool(content.get("hasMaterials", False)),
            "has_tips": bool(content.get("hasTips", False)),
        }

    def categorize_feedback(self, comment: str) -> dict:
        """Returns the four category flags. Raises AIServiceError when the API is unusable."""
        key = comment_hash(comment)
        cached = self.db.query(AiCategorizationCache).filter(AiCategorizationCache.comment_hash == key).first()
        if cached:
            cached.hit_count = (cached.hit_count or 0) + 1
            cached.last_accessed_at = utcnow()
            self.db.flush()
            return {
                "has_teaching": cached.has_teaching,
                "has_assessment": cached.has_assessment,
                "has_materials": cached.has_materials,
                "has_tips": cached.has_tips,
            }

        categories = self._request_categories(comment)
        self.db.add(AiCategorizationCache(comment_hash=key, **categories))
        self.db.flush()
        return categories

    def analyze_comment(self, comment) -> dict:
        """Categories + word count; falls back to all-false when categorization fails."""
        if not comment:
            return empty_analysis()

        words = count_words(comment)
        try:
            categories = self.categorize_feedback(comment)
        except AIServiceError as e:
            logger.warning("AI categorization failed, using conservative defaults: %s", e)
            return empty_analysis(words)
        return {**categories, "word_count": words}
