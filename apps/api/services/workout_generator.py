"""
AI Workout Generation

Builds the coaching prompt, sends it to a text-generation provider and
validates the reply against the WorkoutPlan schema.

Provider selection: OpenAI when configured, otherwise Anthropic. The call
is made once per request; it is billable, so it is never retried.
"""
import json
import logging
from typing import Optional

import anthropic
import openai
from anthropic import Anthropic
from openai import OpenAI
from pydantic import ValidationError as PydanticValidationError

from core.config import settings
from core.exceptions import NoProviderConfiguredError, PlanSchemaError, ProviderError
from schemas import WorkoutPlan, WorkoutRequest

logger = logging.getLogger(__name__)

OPENAI_SYSTEM_PROMPT = (
    "You are a world-class performance coach. Always respond with STRICT JSON that "
    "matches the requested schema. Never add commentary."
)
ANTHROPIC_SYSTEM_PROMPT = (
    "You are a world-class performance coach. Always return STRICT JSON that matches "
    "the requested schema. Do not wrap your response in markdown."
)

PLAN_JSON_SHAPE = {
    "summary": "High level overview in 1-2 sentences",
    "totalDurationMinutes": 45,
    "warmup": ["Joint circles 2 min", "Light cardio 3 min"],
    "blocks": [
        {
            "id": "block-1",
            "title": "Power Primer",
            "focus": "Explosive full-body activation",
            "durationMinutes": 12,
            "instructions": "Pair movements as contrast sets. Keep pace brisk.",
            "timerSeconds": 600,
            "exercises": [
                {
                    "id": "exercise-1",
                    "name": "Kettlebell Swing",
                    "prescription": "3 x 12 @ RPE 7, rest 45s",
                    "equipment": "Kettlebell",
                    "notes": ["Drive from hips", "Neutral spine"],
                }
            ],
            "tips": ["Emphasize nasal breathing", "Shake out arms between rounds"],
        }
    ],
    "finisher": ["Assault bike sprint ladder 5 min"],
    "cooldown": ["Box breathing 2 min", "90/90 hip stretch 2 min"],
    "metrics": {
        "intensity": "medium",
        "rpeTarget": "Stay between 6-8 RPE",
        "estimatedCalories": 350,
    },
}


def build_workout_prompt(request: WorkoutRequest) -> str:
    return f"""
Act as an elite strength & conditioning coach. You know how to design efficient, safe training blocks for every skill level.

Design a single-session workout with:
- Total available time: {request.time} minutes (respect this cap)
- Intensity: {request.intensity.value}
- Goal: {request.goal.value}
- Equipment access: {request.equipment.value}

Output requirements:
1. The plan must fit inside the available time (sum of warmup + blocks + finisher + cooldown).
2. Include 2-4 training blocks with focused themes tailored to the goal.
3. Each block must include at least 2 detailed exercises with actionable prescriptions.
4. Provide timer guidance per block via "timerSeconds" (convert minutes to seconds).
5. Suggest a finisher only if time allows; otherwise return an empty array.
6. Always include actionable cooldown breathing/mobility items.
7. Return VALID JSON only (no markdown, no comments) that matches this structure:
{json.dumps(PLAN_JSON_SHAPE, indent=2)}

Prioritize clarity, specificity, and safe progressions."""


def parse_plan(raw: str) -> WorkoutPlan:
    """
    All-or-nothing: anything that isn't a complete valid plan is rejected.

    Strict JSON validation, so "600" is not an integer and true is not a
    number. Integers are still accepted where a float is expected.
    """
    try:
        return WorkoutPlan.model_validate_json(raw, strict=True)
    except PydanticValidationError as e:
        logger.warning(
            "AI response did not match schema",
            extra={"extra_fields": {"errors": e.error_count()}},
        )
        raise PlanSchemaError() from e


class WorkoutGenerator:

    def __init__(
        self,
        openai_client: Optional[OpenAI] = None,
        anthropic_client: Optional[Anthropic] = None,
        openai_model: Optional[str] = None,
        anthropic_model: Optional[str] = None,
    ):
        self.openai_client = openai_client
        self.anthropic_client = anthropic_client
        self.openai_model = openai_model or settings.OPENAI_MODEL
        self.anthropic_model = anthropic_model or settings.ANTHROPIC_MODEL

    @classmethod
    def from_settings(cls) -> "WorkoutGenerator":
        openai_client = None
        anthropic_client = None
        if settings.OPENAI_API_KEY:
            openai_client = OpenAI(api_key=settings.OPENAI_API_KEY, timeout=settings.EXTERNAL_API_TIMEOUT, max_retries=0)
        if settings.ANTHROPIC_API_KEY:
            anthropic_client = Anthropic(api_key=settings.ANTHROPIC_API_KEY, timeout=settings.EXTERNAL_API_TIMEOUT, max_retries=0)
        return cls(openai_client=openai_client, anthropic_client=anthropic_client)

    @property
    def provider_name(self) -> Optional[str]:
        if self.openai_client is not None:
            return "openai"
        if self.anthropic_client is not None:
            return "anthropic"
        return None

    def _complete_openai(self, prompt: str) -> str:
        completion = self.openai_client.chat.completions.create(
            model=self.openai_model,
            temperature=settings.AI_TEMPERATURE,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": OPENAI_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        )
        choices = completion.choices or []
        return (choices[0].message.content or "").strip() if choices else ""

    def _complete_anthropic(self, prompt: str) -> str:
        response = self.anthropic_client.messages.create(
            model=self.anthropic_model,
            temperature=settings.AI_TEMPERATURE,
            max_tokens=settings.AI_MAX_TOKENS,
            system=ANTHROPIC_SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
        )
        return "".join(
            getattr(block, "text", "") for block in response.content if getattr(block, "type", None) == "text"
        ).strip()

    def complete(self, prompt: str) -> str:
        provider = self.provider_name
        if provider is None:
            raise NoProviderConfiguredError()

        try:
            if provider == "openai":
                text = self._complete_openai(prompt)
            else:
                text = self._complete_anthropic(prompt)
        except (openai.OpenAIError, anthropic.AnthropicError) as e:
            logger.error(f"{provider} completion failed: {e}", exc_info=True)
            raise ProviderError("Failed to generate workout") from e

        if not text:
            logger.error(f"{provider} returned an empty response")
            raise ProviderError("Failed to generate workout")
        return text

    def generate(self, request: WorkoutRequest) -> WorkoutPlan:
        raw = self.complete(build_workout_prompt(request))
        return parse_plan(raw)


def get_workout_generator() -> WorkoutGenerator:
    """FastAPI dependency."""
    return WorkoutGenerator.from_settings()
