"""
Grading prompts for the feedback agent.

Contains:
- Stringency modules
- Grading system prompt (models A, B and the adjudicator)
- Adjudicator instructions
- Feedback tutor prompt
- Request part builders
"""

import json
from typing import Any, Dict, List, Optional

STRINGENCY_MODULES = {
    'generous': """
STRINGENS-MODUL: GENEROS (Low stringency)
Focus: Formative grading and encouragement.
Logic: Apply a generous interpretation. If the student shows a clear attempt at understanding, mark the criterion as met.""",

    'standard': """
STRINGENS-MODUL: STANDARD (Normal stringency)
Focus: Summative grading and normal practice.
Logic: Follow criteria literally with balanced evidence.""",

    'strict': """
STRINGENS-MODUL: STRICT (High stringency)
Focus: Validity and higher education prep.
Logic: Play devil's advocate. No credit for implied knowledge; require explicit proof.""",
}

JSON_RETRY_SUFFIX = "\n\nInvalid JSON. Output ONLY the JSON object and nothing else."

ADJUDICATOR_DISAGREEMENT_SUFFIX = (
    "\n\nResolve any disagreement between the two assessments. "
    "Use the student text and indicators to decide."
)

ADJUDICATOR_FALLBACK_SUFFIX = (
    "\n\nResolve the assessment using the available analysis. "
    "If a model output is missing, proceed with the evidence you have."
)

FEEDBACK_SYSTEM_PROMPT = """Role: Expert university tutor. Provide high-quality formative feedback.
CRITICAL LANGUAGE INSTRUCTION: You MUST detect the language of the STUDENT TEXT and respond in that SAME LANGUAGE.
If the student writes in Swedish, respond in Swedish. If English, respond in English.

Formatting Instructions:
1. Use clear Markdown headers (###).
2. Use bullet points for lists.
3. Use **bold text** for emphasis on key pedagogical concepts.
4. Structure exactly as (translated to the student's language):
   ### What works well
   ### Areas for development
   ### Actionable steps to improve
   ### Reflective question

CRITICAL: Use the provided REFERENCE MATERIAL (RAG) to ground all suggestions and cite specific parts. Do NOT mention numerical scores.
If ANALYTICAL ASSESSMENT DATA includes a reliability_index below 0.6, use more cautious language (e.g. "may", "might", "seems") and avoid overconfident claims."""


def build_grading_system_prompt(stringency: str = 'standard') -> str:
    """
    Build the system prompt shared by both graders and the adjudicator.

    Args:
        stringency: 'generous', 'standard' or 'strict'; unknown values fall
            back to 'standard'

    Returns:
        System instruction requesting the assessment JSON object
    """
    module = STRINGENCY_MODULES.get(stringency, STRINGENCY_MODULES['standard'])
    return f"""Role: Objective academic grading engine. Output: JSON only.
Task: Evaluate the student text against the criteria matrix and reference material.
For each criterion, use the Indicator to determine if the requirement is met.
Return a JSON object with:
- formalia: {{"status": string, "word_count": number, "ref_check": string}}
- criteria_results: one entry for every criterion id with:
  - id: criterion id
  - met: boolean
  - score: number in [0,100] (100 = clearly met, 50 = partially met, 0 = not met)
  - evidence_quote: an exact quote from the student text that supports your decision (min 30 chars). If no exact quote exists, return an empty string.
  - self_reflection_score: number in [0,100] reflecting your confidence (100 = fully confident).
- teacher_insights: {{"common_errors": [string], "strengths": [string], "teaching_actions": [string]}}
Score_100k will be computed as a weighted average of the criteria (weights provided), normalized to 0–100,000.

EVIDENCE REQUIREMENT: evidence_quote MUST be a literal excerpt from the student text. Do not paraphrase or alter punctuation. If you cannot find an exact quote, leave it empty.

{module}

In the teacher_insights section, provide specific:
1. common_errors: Theoretical or factual misunderstandings found in the text.
2. strengths: What the student mastered well.
3. teaching_actions: Concrete recommendations for the teacher on how to address the identified gaps in the next lesson."""


def build_reference_part(reference_context: Optional[str]) -> str:
    if reference_context:
        return f"REFERENCE MATERIAL (RAG):\n{reference_context}"
    return "REFERENCE MATERIAL (RAG): None provided."


def build_context_part(description: str, criteria: List[Dict[str, Any]]) -> str:
    return (
        f"ASSIGNMENT CONTEXT:\n{description}\n\n"
        f"CRITERIA_MATRIX_JSON:\n{json.dumps(criteria, ensure_ascii=False)}"
    )


def build_student_part(student_text: str) -> str:
    return f"STUDENT TEXT FOR EVALUATION:\n{student_text}"


def build_model_assessment_part(label: str, parsed: Optional[Dict[str, Any]]) -> str:
    """Serialize one grader's raw output for the adjudicator (``null`` if it failed)."""
    return f"MODEL_{label}_ASSESSMENT:\n{json.dumps(parsed, ensure_ascii=False)}"


def build_assessment_data_part(assessment: Dict[str, Any]) -> str:
    return f"ANALYTICAL ASSESSMENT DATA: {json.dumps(assessment, ensure_ascii=False)}"
