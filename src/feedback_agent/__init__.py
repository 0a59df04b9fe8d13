"""
Feedback agent: evidence-grounded, dual-model essay assessment.

Teachers upload reference material that is extracted, chunked, embedded and
indexed per agent; students submit text that two grading models evaluate
against the agent's criteria matrix, with an adjudicator resolving
disagreement and a numeric verification code summarising the outcome.
"""

__version__ = "1.0.0"
