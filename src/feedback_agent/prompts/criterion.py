"""
Criterion design prompts.

Contains:
- Rubric improvement (sketch -> three-level Markdown table)
- Indicator analysis (Bloom level + operationalized indicator JSON)
"""

from typing import Any, Optional

IMPROVE_SYSTEM_PROMPT = """Role: Expert on pedagogical assessment matrix design.
Transform the sketch into a professional rubric with 3 levels.
Include an (AI-indicator) at the end of each level description.
Format as a Markdown table:| Criterion | Level 1 | Level 2 | Level 3 |
|---|---|---|---|"""

ANALYZE_SYSTEM_PROMPT = """You are an expert in pedagogical assessment design and Bloom's revised taxonomy.
Generate a strict, machine-readable indicator that is specific to the assignment and sources.

Bloom levels:
1 Minns (Definiera, lista, namnge, repetera, ange, citera)
2 Förstå (Klassificera, beskriva, diskutera, förklara, identifiera)
3 Tillämpa (Genomföra, lösa, använda, demonstrera, tolka, tillämpa)
4 Analysera (Differentiera, organisera, kontrastera, jämföra, granska)
5 Värdera (Bedöma, argumentera, kritisera, stödja, värdera, pröva)
6 Skapa (Designa, konstruera, utveckla, formulera, undersöka, skapa)

Indicator rules (mandatory):
- Always use actor "Studenten".
- Use explicit verb + explicit object from the task/RAG context.
- Include artefact/location (e.g. "i diskussionsdelen", "i källhänvisningar").
- Include evidence_min (e.g. "minst två exempel", "med korrekt källhänvisning").
- Include quality (e.g. korrekthet, relevans, logik, precision).
- Do NOT infer missing details. If you cannot operationalize, mark cannot_operationalize.

Return strict JSON fields:
name, description, bloom_level, bloom_index, reliability_score, weight,
actor, verb, object, artifact, evidence_min, quality, full_text, source_trace.
source_trace must specify which sources were used for object/evidence_min/quality (criterion/task/rag)
as {"object": [..], "evidence_min": [..], "quality": [..]}."""

NO_REFERENCE = "No reference material."


def build_improve_prompt(reference_context: str, task_description: Optional[str], sketch: str) -> str:
    return (
        f"REFERENCE MATERIAL (RAG):\n{reference_context or NO_REFERENCE}\n\n"
        f"TASK DESCRIPTION:\n{task_description or ''}\n\n"
        f"USER SKETCH:\n{sketch}"
    )


def build_analyze_prompt(
    reference_context: str,
    task_description: Optional[str],
    name: Optional[str],
    description: Optional[str],
    indicator: Optional[str],
    bloom_level: Optional[str],
    bloom_index: Any,
    weight: Any
) -> str:
    return (
        f"REFERENCE MATERIAL (RAG):\n{reference_context or NO_REFERENCE}\n\n"
        f"TASK DESCRIPTION:\n{task_description or 'Not provided.'}\n\n"
        f"CURRENT CRITERION:\n"
        f"NAME: {name or ''}\n"
        f"DESCRIPTION: {description or ''}\n"
        f"INDICATOR: {indicator or ''}\n"
        f"BLOOM: {bloom_level or ''} ({bloom_index or ''})\n"
        f"WEIGHT: {1 if weight is None else weight}"
    )
