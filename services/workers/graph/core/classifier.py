"""Free-text task classification.

Two interchangeable strategies answer the same :class:`TaskIntent` contract:
:class:`KeywordTaskClassifier` is fully deterministic, and
:class:`DelegatedTaskClassifier` asks a text-generation collaborator and falls
back to the keyword strategy whenever the collaborator fails.
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, List, Optional
import json
import logging
import re

from pydantic import ValidationError

from .config import Settings
from .constants import (
    _CLASSIFY_TEMPLATE_NAME,
    _COUNT_KEYWORDS,
    _COURT_KEYWORDS,
    _CSV_KEYWORDS,
    _IMAGE_KEYWORDS,
    _QUESTIONS_TEMPLATE_NAME,
    _VISUALIZATION_KEYWORDS,
    _WIKIPEDIA_KEYWORDS,
)
from .errors import ClassificationError
from .types import TaskIntent
from .utils import render_template
from ..io.llm import OpenAIChatGenerator, TextGenerator

logger = logging.getLogger(__name__)

_NUMBERED_QUESTION_RE = re.compile(r"[0-9]\.\s*([^?]+\?)")
_CODE_FENCE_RE = re.compile(r"```(?:json)?\s*|\s*```")
_SYSTEM_PROMPT = "You are a data analysis task parser. Return only valid JSON."


def _contains_any(text: str, keywords) -> bool:
    return any(keyword in text for keyword in keywords)


def strip_code_fences(content: str) -> str:
    return _CODE_FENCE_RE.sub("", content).strip()


def _embedded_question_object(text: str) -> List[str]:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return []
    try:
        data = json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        return []
    if not isinstance(data, dict):
        return []
    return [str(key).strip() for key in data.keys() if str(key).strip()]


def extract_questions_from_text(text: str) -> List[str]:
    """Literal questions in ask order.

    Keys of an embedded JSON object of questions win; otherwise numbered
    ``"<digit>. ...?"`` items are collected.
    """
    embedded = _embedded_question_object(text)
    if embedded:
        return embedded
    return [match.group(1).strip() for match in _NUMBERED_QUESTION_RE.finditer(text)]


class TaskClassifier(ABC):
    @abstractmethod
    async def classify(self, text: str) -> TaskIntent:
        ...

    @abstractmethod
    async def extract_questions(self, text: str) -> List[str]:
        ...

    async def analyze(self, text: str) -> TaskIntent:
        """Intent with its ordered question list filled in."""
        intent = await self.classify(text)
        questions = intent.questions or await self.extract_questions(text)
        return intent.with_questions(questions)


class KeywordTaskClassifier(TaskClassifier):
    """Deterministic keyword rules; the system of record for tests."""

    def classify_sync(self, text: str) -> TaskIntent:
        task = text.lower()

        if _contains_any(task, _WIKIPEDIA_KEYWORDS):
            data_source = "wikipedia"
        elif _contains_any(task, _COURT_KEYWORDS):
            data_source = "court_data"
        elif _contains_any(task, _CSV_KEYWORDS):
            data_source = "csv"
        else:
            data_source = "unknown"

        analysis_type = "statistical_summary"
        operations: List[str] = []
        if "correlation" in task:
            analysis_type = "correlation"
            operations.append("correlation")
        if "regression" in task:
            analysis_type = "regression"
            operations.append("regression")
        if _contains_any(task, _COUNT_KEYWORDS):
            analysis_type = "count"
            operations.append("count")

        visualization = _contains_any(task, _VISUALIZATION_KEYWORDS)
        wants_image = _contains_any(task, _IMAGE_KEYWORDS)
        if wants_image:
            visualization = True

        if "json object" in task:
            output_format = "json_object"
        elif "json array" in task:
            output_format = "json_array"
        elif wants_image:
            output_format = "base64_image"
        else:
            output_format = "json_array"

        if visualization and analysis_type == "statistical_summary":
            analysis_type = "visualization"

        return TaskIntent(
            data_source=data_source,
            analysis_type=analysis_type,
            expected_output_format=output_format,
            visualization_needed=visualization,
            questions=extract_questions_from_text(text),
            statistical_operations=operations,
        )

    async def classify(self, text: str) -> TaskIntent:
        return self.classify_sync(text)

    async def extract_questions(self, text: str) -> List[str]:
        return extract_questions_from_text(text)


class DelegatedTaskClassifier(TaskClassifier):
    """Asks a :class:`TextGenerator` for the intent as JSON."""

    def __init__(self, generator: TextGenerator, fallback: Optional[KeywordTaskClassifier] = None) -> None:
        self.generator = generator
        self.fallback = fallback or KeywordTaskClassifier()

    @staticmethod
    def parse_intent(content: str) -> TaskIntent:
        cleaned = strip_code_fences(content)
        try:
            return TaskIntent.model_validate_json(cleaned)
        except ValidationError as exc:
            raise ClassificationError(f"malformed intent: {exc.error_count()} validation errors") from exc

    @staticmethod
    def parse_questions(content: str) -> List[str]:
        cleaned = strip_code_fences(content)
        try:
            data: Any = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            raise ClassificationError("question list is not valid JSON") from exc
        if not isinstance(data, list):
            raise ClassificationError("question list must be a JSON array")
        return [str(item).strip() for item in data if str(item).strip()]

    async def classify(self, text: str) -> TaskIntent:
        prompt = render_template(_CLASSIFY_TEMPLATE_NAME, task=text)
        try:
            content = await self.generator.complete(prompt, system=_SYSTEM_PROMPT, max_tokens=500)
            return self.parse_intent(content)
        except ClassificationError as exc:
            logger.warning("delegated classification unusable, using keywords: %s", exc)
        except Exception:
            logger.exception("delegated classification failed, using keywords")
        return await self.fallback.classify(text)

    async def extract_questions(self, text: str) -> List[str]:
        prompt = render_template(_QUESTIONS_TEMPLATE_NAME, task=text)
        try:
            content = await self.generator.complete(prompt, max_tokens=300)
            return self.parse_questions(content)
        except ClassificationError as exc:
            logger.warning("delegated question extraction unusable: %s", exc)
        except Exception:
            logger.exception("delegated question extraction failed")
        return await self.fallback.extract_questions(text)


def build_classifier(settings: Settings, generator: Optional[TextGenerator] = None) -> TaskClassifier:
    """Composition root for the classifier strategy."""
    if generator is not None:
        return DelegatedTaskClassifier(generator)
    if settings.llm_enabled:
        return DelegatedTaskClassifier(
            OpenAIChatGenerator(
                settings.openai_api_key or "",
                model=settings.llm_model,
                timeout=settings.llm_timeout,
            )
        )
    return KeywordTaskClassifier()
