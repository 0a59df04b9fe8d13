"""Shared helpers."""

from feedback_agent.utils.json_extractor import extract_json_from_response, strip_code_fences
from feedback_agent.utils.sorting import natural_sort_key

__all__ = ['extract_json_from_response', 'strip_code_fences', 'natural_sort_key']
