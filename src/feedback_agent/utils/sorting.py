"""
Sorting utilities.

Provides natural sorting for numbered archive parts (slide2 before slide10).
"""

import re
from typing import List, Any


def natural_sort_key(s: Any) -> List:
    """
    Sort key for natural sorting.

    Examples:
        >>> sorted(['slide1.xml', 'slide10.xml', 'slide2.xml'], key=natural_sort_key)
        ['slide1.xml', 'slide2.xml', 'slide10.xml']
    """
    def convert(text: str) -> int | str:
        return int(text) if text.isdigit() else text.lower()
    return [convert(c) for c in re.split(r'(\d+)', str(s))]
