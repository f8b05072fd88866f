"""
Single-shot analysis endpoints with response caching.

Each analysis kind pairs a request schema with a deterministic prompt
builder. A request is fingerprinted (scoped by kind), looked up in the
response cache, and only sent to the model on a miss. Whatever the model
returns is cached as-is: the text is not checked for valid JSON, so
consumers of ``data`` must tolerate malformed payloads.
"""

import time
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Type

from pydantic import BaseModel

from .cache import ResponseCache
from .fingerprint import fingerprint
from .gateway import GenerationGateway, user_turn
from .models import (
    DEFAULT_MODEL,
    AdvancedHealthRequest,
    GenerationConfig,
    HealthInsightsRequest,
    WellnessEntryRequest,
)
from .prompts import (
    WELLNESS_INSTRUCTION,
    build_advanced_health_prompt,
    build_health_insights_prompt,
    build_wellness_prompt,
)

logger = logging.getLogger(__name__)


def _raw_text(payload: Any, text: str) -> Any:
    return text


def _wellness_result(payload: WellnessEntryRequest, text: str) -> Dict[str, Any]:
    return {
        "analysis": text,
        "date": payload.date or datetime.now(timezone.utc).isoformat(),
        "timestamp": int(time.time() * 1000),
    }


@dataclass(frozen=True)
class AnalysisKind:
    """One cached single-shot endpoint."""

    name: str
    schema: Type[BaseModel]
    build_prompt: Callable[[Any], str]
    fresh_message: str
    cached_message: str
    system_instruction: Optional[str] = None
    shape: Callable[[Any, str], Any] = _raw_text


ADVANCED_HEALTH = AnalysisKind(
    name="advanced-health",
    schema=AdvancedHealthRequest,
    build_prompt=build_advanced_health_prompt,
    fresh_message="Health analysis completed successfully",
    cached_message="Health analysis retrieved from cache",
)

HEALTH_INSIGHTS = AnalysisKind(
    name="health-insights",
    schema=HealthInsightsRequest,
    build_prompt=build_health_insights_prompt,
    fresh_message="Health insights generated successfully",
    cached_message="Health insights retrieved from cache",
)

WELLNESS = AnalysisKind(
    name="wellness",
    schema=WellnessEntryRequest,
    build_prompt=build_wellness_prompt,
    fresh_message="Wellness analysis completed successfully",
    cached_message="Wellness analysis retrieved from cache",
    system_instruction=WELLNESS_INSTRUCTION,
    shape=_wellness_result,
)

KINDS = {kind.name: kind for kind in (ADVANCED_HEALTH, HEALTH_INSIGHTS, WELLNESS)}


@dataclass
class AnalysisResult:
    data: Any
    cached: bool
    message: str


class AnalysisService:
    """Runs analysis kinds through the cache and the gateway."""

    def __init__(
        self,
        gateway: GenerationGateway,
        cache: ResponseCache,
        default_model: str = DEFAULT_MODEL,
    ):
        self.gateway = gateway
        self.cache = cache
        self.default_model = default_model

    async def analyze(self, kind: AnalysisKind, payload: BaseModel) -> AnalysisResult:
        key = fingerprint(payload.model_dump(mode="json"), scope=kind.name)

        cached = self.cache.get(key)
        if cached is not None:
            logger.info("Serving %s analysis from cache (%s)", kind.name, key[:12])
            return AnalysisResult(data=cached, cached=True, message=kind.cached_message)

        model = getattr(payload, "model_type", None) or self.default_model
        config = GenerationConfig(system_instruction=kind.system_instruction)
        logger.info("Running %s analysis with model %s", kind.name, model)
        text = await self.gateway.generate(model, [user_turn(kind.build_prompt(payload))], config)

        data = kind.shape(payload, text)
        self.cache.set(key, data)
        return AnalysisResult(data=data, cached=False, message=kind.fresh_message)
