"""
equality.py

Deep structural equality for step outputs.

A re-run on unchanged input must reproduce its outputs exactly, so the
comparison is stricter than ``==``: ``1``, ``1.0`` and ``True`` are three
different outputs, while two NaNs produced by the same computation are the
same output.
"""

import dataclasses
import math
from collections.abc import Mapping
from typing import Any


def structurally_equal(a: Any, b: Any) -> bool:
    """
    Compare two output values by deep value equality.

    Rules:
    - Mappings: same keys, recursively equal values (order-insensitive)
    - Lists and tuples: same type, same length, positionally equal
    - bool, int and float never compare equal to each other
    - NaN equals NaN
    - Dataclass instances: same type, recursively equal fields
    - Anything else: ``a == b``
    """
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b

    if isinstance(a, float) or isinstance(b, float):
        if type(a) is not type(b):
            return False
        if math.isnan(a) and math.isnan(b):
            return True
        return a == b

    if isinstance(a, int) and isinstance(b, int):
        return type(a) is type(b) and a == b

    if isinstance(a, Mapping) or isinstance(b, Mapping):
        if not (isinstance(a, Mapping) and isinstance(b, Mapping)):
            return False
        if set(a.keys()) != set(b.keys()):
            return False
        return all(structurally_equal(a[k], b[k]) for k in a)

    if isinstance(a, (list, tuple)) or isinstance(b, (list, tuple)):
        if type(a) is not type(b) or len(a) != len(b):
            return False
        return all(structurally_equal(x, y) for x, y in zip(a, b))

    if dataclasses.is_dataclass(a) and not isinstance(a, type):
        if type(a) is not type(b):
            return False
        return all(
            structurally_equal(getattr(a, f.name), getattr(b, f.name))
            for f in dataclasses.fields(a)
            if f.compare
        )

    return bool(a == b)


def describe_value(value: Any, limit: int = 80) -> str:
    """Render a value for a report, truncating long reprs."""
    text = repr(value)
    if len(text) > limit:
        return text[:limit - 3] + "..."
    return text
