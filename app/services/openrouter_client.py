"""
OpenRouter generator for career recommendations, career details and course
recommendations.

Uses the OpenAI SDK against OpenRouter's OpenAI-compatible endpoint. Every
call is bounded by generation_timeout_seconds; timeouts, API errors and
replies with no parseable JSON all surface as GenerationError.
"""

import asyncio
import json
import re
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI, OpenAIError

from app.config import get_settings
from app.schemas.recommendations import StudentProfile
from app.utils.logger import logger
from app.utils.metrics import track_duration


class GenerationError(Exception):
    """The generator could not produce a usable payload."""


_THINK_BLOCK = re.compile(r"<think>[\s\S]*?</think>", re.IGNORECASE)


def extract_json(text: str, expect: type) -> Any:
    """
    Pull the JSON payload out of a model reply.

    Handles reasoning blocks, markdown code fences and prose around the JSON.
    `expect` is list or dict.
    """
    text = _THINK_BLOCK.sub("", text or "").strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else text[3:]
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
        text = text.strip()

    opener, closer = ("[", "]") if expect is list else ("{", "}")
    candidates = [text]
    start, end = text.find(opener), text.rfind(closer)
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(parsed, expect):
            return parsed

    raise GenerationError(f"Could not parse a JSON {expect.__name__} from model reply")


def build_profile_context(profile: StudentProfile) -> str:
    lines = [
        f"- Name: {profile.name or 'Not provided'}",
        f"- Education Level: {profile.school_level or 'Not specified'}",
        f"- Current Grade: {profile.current_grade or 'Not specified'}",
        f"- CBE Subjects: {', '.join(profile.subjects) or 'Not specified'}",
        f"- Career Interests: {', '.join(profile.interests) or 'Not specified'}",
        f"- Career Goals: {profile.career_goals or 'Not specified'}",
    ]
    perf = profile.academic_performance
    if perf:
        if perf.overall_average is not None:
            lines.append(f"- Overall Average: {perf.overall_average:.1f}%")
        if perf.strong_subjects:
            lines.append(f"- Strong Subjects: {', '.join(perf.strong_subjects)}")
        if perf.weak_subjects:
            lines.append(f"- Weak Subjects: {', '.join(perf.weak_subjects)}")
        if perf.performance_trend:
            lines.append(f"- Performance Trend: {perf.performance_trend}")
    return "\n".join(lines)


class OpenRouterClient:
    """Generator used when the AI cache reports a miss"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        settings = get_settings()
        self.model = model or settings.openrouter_model
        self.timeout = timeout or settings.generation_timeout_seconds
        self.test_mode = settings.test_mode and client is None

        if client is not None or self.test_mode:
            self.client = client
            return

        api_key = api_key or settings.openrouter_api_key
        if not api_key:
            raise ValueError(
                "OPENROUTER_API_KEY not found. Set it in the environment, "
                "or set TEST_MODE=true to use canned recommendations."
            )

        headers = {"X-Title": settings.app_name}
        if settings.site_url:
            headers["HTTP-Referer"] = settings.site_url
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=settings.openrouter_base_url,
            default_headers=headers,
        )

    async def _complete(self, operation: str, prompt: str, max_tokens: int) -> str:
        async with track_duration("openrouter", operation):
            try:
                response = await asyncio.wait_for(
                    self.client.chat.completions.create(
                        model=self.model,
                        messages=[
                            {"role": "system", "content": "You are CareerPath AI, a career counselor for Kenyan CBE students. Return only valid JSON."},
                            {"role": "user", "content": prompt},
                        ],
                        temperature=0.7,
                        max_tokens=max_tokens,
                    ),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError as e:
                raise GenerationError(f"{operation} timed out after {self.timeout}s") from e
            except OpenAIError as e:
                raise GenerationError(f"{operation} failed: {e}") from e

        if not response.choices:
            raise GenerationError(f"{operation} returned no choices")
        return response.choices[0].message.content or ""

    async def generate_career_recommendations(self, profile: StudentProfile) -> List[Dict[str, Any]]:
        """Return raw recommendation items (title, matchPercentage, description, ...)."""
        if self.test_mode:
            logger.info("[TEST MODE] Returning canned career recommendations")
            return [
                {
                    "title": "Software Engineer",
                    "matchPercentage": 85,
                    "description": "Designs and builds software systems.",
                    "salaryRange": "KES 80,000 - 250,000 per month",
                    "education": "BSc Computer Science",
                    "growth": "High",
                    "whyRecommended": "Strong interest in technology and mathematics.",
                },
            ]

        prompt = f"""Recommend 3 careers for this Kenyan student.

Student Profile:
{build_profile_context(profile)}

Return a JSON array of objects with keys: title, matchPercentage (0-100),
description, salaryRange, education, growth, whyRecommended."""

        items = extract_json(await self._complete("career_recommendations", prompt, 1500), list)
        return [item for item in items if isinstance(item, dict) and (item.get("title") or item.get("name"))]

    async def generate_career_details(self, profile: StudentProfile, career_name: str) -> Dict[str, Any]:
        if self.test_mode:
            logger.info(f"[TEST MODE] Returning canned career details for {career_name}")
            return {
                "overview": f"{career_name} in Kenya.",
                "pathways": ["STEM"],
                "universities": ["University of Nairobi"],
                "skills": ["Problem solving"],
            }

        prompt = f"""Describe the career "{career_name}" for this Kenyan student.

Student Profile:
{build_profile_context(profile)}

Return a JSON object with keys: overview, dailyTasks, skills, cbePathway,
subjects, universities, salaryProgression, jobMarket, nextSteps."""

        return extract_json(await self._complete("career_details", prompt, 2000), dict)

    async def generate_course_recommendations(self, profile: StudentProfile) -> List[Dict[str, Any]]:
        if self.test_mode:
            logger.info("[TEST MODE] Returning canned course recommendations")
            return [
                {
                    "title": "CS50: Introduction to Computer Science",
                    "provider": "edX",
                    "duration": "12 weeks",
                    "difficulty": "Beginner",
                    "free": True,
                },
            ]

        prompt = f"""Recommend 3 free online courses for this Kenyan student.

Student Profile:
{build_profile_context(profile)}

Return a JSON array of objects with keys: title, provider, duration,
difficulty, description, skills, link, free, certificate, whyRecommended."""

        items = extract_json(await self._complete("course_recommendations", prompt, 1500), list)
        if not items:
            raise GenerationError("course_recommendations returned an empty list")
        return items
