import re
import json
import math
import logging
from dataclasses import dataclass

import groq
from groq import Groq
from flask import current_app

from coursework.errors import GradingServiceUnavailable
from coursework.penalty import round_half_up

logger = logging.getLogger(__name__)

FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL | re.IGNORECASE)
GRADE_IN_TEXT = re.compile(r"\bgrade\b[\"'\s:=]+(\d+(?:\.\d+)?)", re.IGNORECASE)


@dataclass
class Graded:
    grade: int
    feedback: str


@dataclass
class ParseFailure:
    """The model answered, but no grade could be extracted from the answer."""
    raw_text: str
    reason: str = "No grade found in AI response"


def get_groq_client():
    api_key = current_app.config.get("GROQ_API_KEY")
    if not api_key: return None
    # One attempt only; a timeout surfaces as APITimeoutError
    return Groq(api_key=api_key, timeout=current_app.config.get("AI_GRADER_TIMEOUT", 30), max_retries=0)


def build_prompt(content, rubric_text, max_points):
    return f"""You are an AI grading assistant. Grade the following student submission based on the provided rubrics.

Rubrics:
{rubric_text}

Student Submission:
{content}

Please provide:
1. A numerical grade out of {max_points}
2. Detailed feedback explaining the grade
Return STRICT JSON: {{"grade": 0-{max_points}, "feedback": "..."}}
"""


def _clamp(value, max_points):
    return min(max_points, max(0, round_half_up(value)))


def _from_json(text, max_points):
    try:
        data = json.loads(text)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    grade = data.get("grade")
    if isinstance(grade, bool) or not isinstance(grade, (int, float, str)):
        return None
    try:
        grade = float(grade)
    except ValueError:
        return None
    if not math.isfinite(grade):
        return None
    feedback = data.get("feedback", "")
    if not isinstance(feedback, str):
        feedback = json.dumps(feedback)
    return Graded(grade=_clamp(grade, max_points), feedback=feedback)


def parse_grading_response(text, max_points):
    """
    Parsing order:
    1. The whole response as JSON.
    2. A fenced ```json block inside the response.
    3. A "grade: N" pattern anywhere in free text; the full text becomes the feedback.
    """
    if not text or not text.strip():
        return ParseFailure(raw_text=text or "", reason="Empty AI response")

    result = _from_json(text.strip(), max_points)
    if result:
        return result

    fenced = FENCED_JSON.search(text)
    if fenced:
        result = _from_json(fenced.group(1), max_points)
        if result:
            return result

    match = GRADE_IN_TEXT.search(text)
    if match:
        return Graded(grade=_clamp(float(match.group(1)), max_points), feedback=text)

    return ParseFailure(raw_text=text)


def grade_submission(content, rubric_text, max_points, client=None):
    """Ask the model for a grade. Returns ``Graded`` or ``ParseFailure``.

    Transport failures raise ``GradingServiceUnavailable``; they are never
    turned into a zero grade.
    """
    client = client or get_groq_client()
    if not client:
        raise GradingServiceUnavailable("AI grading is not configured")

    try:
        completion = client.chat.completions.create(
            messages=[{"role": "user", "content": build_prompt(content, rubric_text, max_points)}],
            model=current_app.config.get("AI_GRADER_MODEL", "llama-3.3-70b-versatile"),
            response_format={"type": "json_object"}
        )
    except groq.APIError as e:
        logger.error("AI Grading Error: %s", e)
        raise GradingServiceUnavailable() from e

    text = completion.choices[0].message.content
    result = parse_grading_response(text, max_points)
    if isinstance(result, ParseFailure):
        logger.warning("AI grading response had no extractable grade: %s", result.reason)
    return result
