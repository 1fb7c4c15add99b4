"""
tracelet.types
~~~~~~~~~~~~~~

Type aliases shared across tracelet.
"""

AnnotationValue = str | int | float | bool
"""Valid types for indexed annotation values."""

ANNOTATION_TYPES = (str, int, float, bool)
"""Runtime check counterpart of AnnotationValue."""

__all__ = [
    "AnnotationValue",
    "ANNOTATION_TYPES",
]
