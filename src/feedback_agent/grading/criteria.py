"""
Criteria matrix normalization.

Rubric rows arrive as loosely typed dictionaries edited by teachers. Before
grading they are reduced to complete ``Criterion`` objects with stable ids,
so model results can be matched back by id.
"""

import math
from typing import Any, Dict, List

from feedback_agent.config.constants import (
    DEFAULT_BLOOM_LEVEL,
    DEFAULT_RELIABILITY,
    DEFAULT_WEIGHT,
)
from feedback_agent.core.exceptions import InvalidInputError
from feedback_agent.core.models import Agent, Criterion


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _finite_number(value: Any):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value if math.isfinite(value) else None


def normalize_weight(value: Any) -> float:
    """Finite positive weight, otherwise 1."""
    number = _finite_number(value)
    return float(number) if number is not None and number > 0 else DEFAULT_WEIGHT


def normalize_reliability(value: Any) -> float:
    number = _finite_number(value)
    if number is None:
        return DEFAULT_RELIABILITY
    return min(1.0, max(0.0, float(number)))


def normalize_criterion(raw: Any, index: int) -> Criterion:
    """
    Fill in a single rubric row.

    Missing names become ``Kriterium {n}``; description and indicator fall
    back to each other and to the name.
    """
    raw = raw if isinstance(raw, dict) else {}
    fallback = f"Kriterium {index + 1}"
    name = _text(raw.get("name"))
    description = _text(raw.get("description"))
    indicator = _text(raw.get("indicator"))
    bloom_index = _finite_number(raw.get("bloom_index"))

    return Criterion(
        id=_text(raw.get("id")) or f"criterion-{index + 1}",
        name=name or fallback,
        description=description or name or indicator or fallback,
        indicator=indicator or description or name or fallback,
        is_mandatory=raw.get("is_mandatory") is not False,
        bloom_level=raw.get("bloom_level") if isinstance(raw.get("bloom_level"), str) else DEFAULT_BLOOM_LEVEL,
        bloom_index=int(bloom_index) if bloom_index is not None else 0,
        reliability_score=normalize_reliability(raw.get("reliability_score")),
        weight=normalize_weight(raw.get("weight")),
    )


def legacy_criteria_matrix(criteria: List[str]) -> List[Dict[str, Any]]:
    """Convert plain-text legacy criteria into matrix rows."""
    return [
        {
            "id": f"legacy-{i + 1}",
            "name": text,
            "description": text,
            "indicator": text,
            "is_mandatory": True,
            "bloom_level": DEFAULT_BLOOM_LEVEL,
            "bloom_index": 0,
            "reliability_score": DEFAULT_RELIABILITY,
            "weight": DEFAULT_WEIGHT,
        }
        for i, text in enumerate(criteria)
    ]


def normalize_criteria_matrix(agent: Agent) -> List[Criterion]:
    """
    The agent's rubric as complete criteria.

    Raises:
        InvalidInputError: The agent has neither a matrix nor legacy criteria
    """
    rows = agent.criteria_matrix or legacy_criteria_matrix(agent.criteria)
    if not rows:
        raise InvalidInputError("No criteria configured for this agent.", {"agent_id": agent.id})
    return [normalize_criterion(row, i) for i, row in enumerate(rows)]


def rubric_snapshot(agent: Agent, criteria: List[Criterion]) -> List[Dict[str, Any]]:
    """Rubric stored with a submission: the raw matrix if set, else the normalized rows."""
    if agent.criteria_matrix:
        return [dict(row) for row in agent.criteria_matrix]
    return [c.model_dump() for c in criteria]


def reliability_index(criteria: List[Criterion]) -> float:
    """Mean criterion reliability, clamped to [0, 1]."""
    if not criteria:
        return DEFAULT_RELIABILITY
    mean = sum(c.reliability_score for c in criteria) / len(criteria)
    return min(1.0, max(0.0, mean))
