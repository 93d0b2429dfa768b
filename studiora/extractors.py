"""
Document types and extractor selection.
"""

import logging
import re
from enum import Enum
from typing import Dict, Optional

from .block_extractors import JsonExtractor, ModulesExtractor, SyllabusExtractor, TabularExtractor
from .date_resolver import DateResolver
from .domains import ParserConfig
from .extractor_base import Extractor
from .schedule_extractor import GenericExtractor, ScheduleExtractor

logger = logging.getLogger(__name__)


class DocumentType(Enum):
    """Declared document shapes accepted by the parse entry point."""
    CANVAS_MODULES = "canvas-modules"
    CANVAS_ASSIGNMENTS = "canvas-assignments"
    SYLLABUS = "syllabus"
    SCHEDULE = "schedule"
    MIXED = "mixed"

    @classmethod
    def parse(cls, value) -> Optional["DocumentType"]:
        """Map a declared value to a DocumentType; unknown strings give None."""
        if value is None:
            return cls.MIXED
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            logger.warning("Unknown document type %r, using generic extractor", value)
            return None


FORMAT_INDICATORS: Dict[DocumentType, tuple] = {
    DocumentType.CANVAS_MODULES: (r'\bmodules?\s+\d+', r'\bcanvas\b'),
    DocumentType.CANVAS_ASSIGNMENTS: (r'\|', r'\bpts\b', r'\bdue:'),
    DocumentType.SYLLABUS: (r'\bsyllabus\b', r'\bcourse description\b', r'\binstructor\b',
                            r'\boffice hours\b', r'\bgrading\b'),
    DocumentType.SCHEDULE: (r'\bweek\s+\d+', r'\bschedule\b', r'\bcalendar\b',
                            r'\b(?:monday|tuesday|wednesday|thursday|friday)\b'),
}


def detect_document_type(text: str) -> Optional[DocumentType]:
    """Guess the document shape by counting indicator occurrences.

    Returns:
        Best-scoring DocumentType, or None when no indicator is present
    """
    lower = text.lower()
    best_type: Optional[DocumentType] = None
    best_score = 0
    for doc_type, indicators in FORMAT_INDICATORS.items():
        score = sum(len(re.findall(p, lower)) for p in indicators)
        if score > best_score:
            best_type, best_score = doc_type, score
    return best_type


def create_extractor(document_type: Optional[DocumentType], config: ParserConfig,
                     resolver: DateResolver, text: str = "") -> Extractor:
    """Select the extractor for a document type.

    ``MIXED`` auto-detects the shape from the text, including JSON exports;
    None (an unknown declared type) falls back to the generic extractor.
    """
    auto_detected = document_type is DocumentType.MIXED
    if auto_detected and text.lstrip().startswith('{'):
        structured = JsonExtractor(config, resolver)
        if structured.detect(text):
            logger.info("Auto-detected document type: json")
            return structured
        logger.info("JSON-like text did not decode, using generic extractor")
        return GenericExtractor(config, resolver)
    if auto_detected:
        document_type = detect_document_type(text)
        logger.info("Auto-detected document type: %s",
                    document_type.value if document_type else "generic")

    if document_type is DocumentType.CANVAS_MODULES:
        extractor: Extractor = ModulesExtractor(config, resolver)
    elif document_type is DocumentType.CANVAS_ASSIGNMENTS:
        extractor = TabularExtractor(config, resolver)
    elif document_type is DocumentType.SYLLABUS:
        extractor = SyllabusExtractor(config, resolver)
    elif document_type is DocumentType.SCHEDULE:
        extractor = ScheduleExtractor(config, resolver)
    else:
        extractor = GenericExtractor(config, resolver)

    if auto_detected and not extractor.detect(text):
        logger.info("%s extractor rejected the text, using generic extractor", extractor.name)
        extractor = GenericExtractor(config, resolver)
    return extractor
