"""
Criterion design tools for teachers.

- improve_criterion: turns a rough sketch into a three-level Markdown rubric
- analyze_criterion: operationalizes a criterion into a Bloom-tagged indicator
  ("Studenten {verb} {object} i {artifact} genom att {evidence_min}. ...")
  and rates how clear the indicator is

Both are single model calls grounded by the agent's reference material.
"""

import asyncio
import math
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger
from pydantic import BaseModel, Field

from feedback_agent.config.constants import IMPROVE_TEMPERATURE
from feedback_agent.config.providers import TASK_CRITERION_ANALYZE, TASK_CRITERION_IMPROVE
from feedback_agent.core.exceptions import InvalidInputError, MalformedOutputError
from feedback_agent.grading.orchestrator import GradingOrchestrator
from feedback_agent.prompts.criterion import (
    ANALYZE_SYSTEM_PROMPT,
    IMPROVE_SYSTEM_PROMPT,
    build_analyze_prompt,
    build_improve_prompt,
)
from feedback_agent.rag.retriever import Retriever
from feedback_agent.utils.json_extractor import extract_json_from_response, strip_code_fences

MISSING = "saknas"
DEFAULT_ANALYZED_BLOOM_LEVEL = "Förstå"
DEFAULT_ANALYZED_BLOOM_INDEX = 2

CLARITY_UNCLEAR = ("OTYDLIG", 0.2)
CLARITY_PARTIAL = ("MELLAN", 0.55)
CLARITY_CLEAR = ("TYDLIG", 0.85)


class SourceTrace(BaseModel):
    object: List[str] = Field(default_factory=list)
    evidence_min: List[str] = Field(default_factory=list)
    quality: List[str] = Field(default_factory=list)


class CriterionAnalysis(BaseModel):
    """Operationalized criterion returned to the rubric editor."""
    name: str
    description: str
    indicator: str
    indicator_status: str
    indicator_actor: str = "Studenten"
    indicator_verb: str
    indicator_object: str
    indicator_artifact: str
    indicator_evidence_min: str
    indicator_quality: str
    indicator_source_trace: SourceTrace
    bloom_level: str
    bloom_index: int
    reliability_score: float
    clarity_label: str
    weight: float


def classify_indicator_clarity(verb: str, obj: str, evidence_min: str) -> Tuple[str, float]:
    """Clarity label and reliability score for an indicator's parts."""
    if not verb or verb == MISSING or not obj or obj == MISSING:
        return CLARITY_UNCLEAR
    if not evidence_min or evidence_min == MISSING:
        return CLARITY_PARTIAL
    return CLARITY_CLEAR


def _finite(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _str(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def _string_list(value: Any) -> List[str]:
    return [str(item) for item in value] if isinstance(value, list) else []


class CriterionDesigner:
    """Rubric authoring helpers backed by the criterion model routes."""

    def __init__(self, orchestrator: GradingOrchestrator, retriever: Retriever):
        self.orchestrator = orchestrator
        self.retriever = retriever

    async def _reference(self, agent_id: str, query_text: str) -> str:
        return await asyncio.to_thread(self.retriever.get_reference_context, agent_id, query_text)

    async def improve_criterion(self, agent_id: str, sketch: str, task_description: Optional[str] = None) -> str:
        """
        Rewrite a criterion sketch as a Markdown rubric table.

        Raises:
            InvalidInputError: agent id or sketch missing
        """
        if not agent_id:
            raise InvalidInputError("Missing agentId.")
        if not sketch or not sketch.strip():
            raise InvalidInputError("Missing sketch.")

        reference = await self._reference(agent_id, f"{task_description or ''}\n{sketch}")
        text = await self.orchestrator.generate(
            TASK_CRITERION_IMPROVE,
            [build_improve_prompt(reference, task_description, sketch)],
            system_instruction=IMPROVE_SYSTEM_PROMPT,
            temperature=IMPROVE_TEMPERATURE,
        )
        logger.info(f"Improved criterion sketch for agent {agent_id}")
        return strip_code_fences(text or "")

    async def analyze_criterion(
        self,
        agent_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        indicator: Optional[str] = None,
        bloom_level: Optional[str] = None,
        bloom_index: Optional[float] = None,
        weight: Optional[float] = None,
        task_description: Optional[str] = None
    ) -> CriterionAnalysis:
        """
        Operationalize one criterion into a structured indicator.

        Raises:
            InvalidInputError: agent id missing, or no name/description/indicator
            MalformedOutputError: the model did not return a JSON object
        """
        if not agent_id:
            raise InvalidInputError("Missing agentId.")
        seed = "\n".join(v for v in (name, description, indicator) if isinstance(v, str) and v.strip())
        if not seed:
            raise InvalidInputError("Missing criterion content.")

        reference = await self._reference(agent_id, f"{task_description or ''}\n{seed}")
        text = await self.orchestrator.generate(
            TASK_CRITERION_ANALYZE,
            [build_analyze_prompt(
                reference, task_description, name, description, indicator, bloom_level, bloom_index, weight
            )],
            system_instruction=ANALYZE_SYSTEM_PROMPT,
            json_output=True,
        )
        payload = extract_json_from_response(text or "")
        if payload is None:
            raise MalformedOutputError("Criterion analysis returned invalid JSON")
        return self.build_analysis(payload, name, description, bloom_level, bloom_index, weight)

    @staticmethod
    def build_analysis(
        payload: Dict[str, Any],
        name: Optional[str] = None,
        description: Optional[str] = None,
        bloom_level: Optional[str] = None,
        bloom_index: Optional[float] = None,
        weight: Optional[float] = None
    ) -> CriterionAnalysis:
        """Post-process the model payload; the model's own reliability score is ignored."""
        verb = _str(payload.get("verb"))
        obj = _str(payload.get("object"))
        artifact = _str(payload.get("artifact"))
        evidence_min = _str(payload.get("evidence_min"))
        quality = _str(payload.get("quality"))

        status = "ok" if verb and obj else "cannot_operationalize"
        label, reliability = classify_indicator_clarity(verb or MISSING, obj or MISSING, evidence_min or MISSING)

        full_text = ""
        if status == "ok":
            full_text = (
                f"Studenten {verb} {obj} i {artifact or 'studentens text'} "
                f"genom att {evidence_min or MISSING}. Kvalitet: {quality or MISSING}."
            )

        raw_index = _finite(payload.get("bloom_index"))
        if raw_index is None:
            raw_index = _finite(bloom_index)
        if raw_index is None:
            raw_index = DEFAULT_ANALYZED_BLOOM_INDEX

        clean_weight = _finite(payload.get("weight"))
        if clean_weight is None:
            clean_weight = _finite(weight)

        trace = payload.get("source_trace") if isinstance(payload.get("source_trace"), dict) else {}

        return CriterionAnalysis(
            name=_str(payload.get("name") or name),
            description=_str(payload.get("description") or description),
            indicator=full_text,
            indicator_status=status,
            indicator_verb=verb or MISSING,
            indicator_object=obj or MISSING,
            indicator_artifact=artifact or MISSING,
            indicator_evidence_min=evidence_min or MISSING,
            indicator_quality=quality or MISSING,
            indicator_source_trace=SourceTrace(
                object=_string_list(trace.get("object")),
                evidence_min=_string_list(trace.get("evidence_min")),
                quality=_string_list(trace.get("quality")),
            ),
            bloom_level=_str(payload.get("bloom_level") or bloom_level or DEFAULT_ANALYZED_BLOOM_LEVEL),
            bloom_index=max(1, min(6, round(raw_index))),
            reliability_score=reliability,
            clarity_label=label,
            weight=clean_weight if clean_weight is not None else 1.0,
        )
