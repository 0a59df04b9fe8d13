"""
Prompt templates for the feedback agent.

Organized by category:
- grading: Grader, adjudicator and feedback prompts plus request parts
- criterion: Rubric improvement and indicator analysis
"""

from feedback_agent.prompts.grading import (
    STRINGENCY_MODULES,
    JSON_RETRY_SUFFIX,
    ADJUDICATOR_DISAGREEMENT_SUFFIX,
    ADJUDICATOR_FALLBACK_SUFFIX,
    FEEDBACK_SYSTEM_PROMPT,
    build_grading_system_prompt,
    build_reference_part,
    build_context_part,
    build_student_part,
    build_model_assessment_part,
    build_assessment_data_part,
)

from feedback_agent.prompts.criterion import (
    IMPROVE_SYSTEM_PROMPT,
    ANALYZE_SYSTEM_PROMPT,
    build_improve_prompt,
    build_analyze_prompt,
)

__all__ = [
    'STRINGENCY_MODULES',
    'JSON_RETRY_SUFFIX',
    'ADJUDICATOR_DISAGREEMENT_SUFFIX',
    'ADJUDICATOR_FALLBACK_SUFFIX',
    'FEEDBACK_SYSTEM_PROMPT',
    'build_grading_system_prompt',
    'build_reference_part',
    'build_context_part',
    'build_student_part',
    'build_model_assessment_part',
    'build_assessment_data_part',
    'IMPROVE_SYSTEM_PROMPT',
    'ANALYZE_SYSTEM_PROMPT',
    'build_improve_prompt',
    'build_analyze_prompt',
]
