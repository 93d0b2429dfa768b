"""Studiora: assignment extraction from course documents."""

from .models import Assignment, Module, ParseResult
from .pipeline import DualPipelineParser, ParseOptions, Stage

__all__ = [
    "Assignment",
    "Module",
    "ParseResult",
    "DualPipelineParser",
    "ParseOptions",
    "Stage",
]

__version__ = "0.1.0"
