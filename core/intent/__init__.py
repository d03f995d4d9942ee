"""Intent parsing: classify -> extract -> validate -> interactive completion."""

from core.intent.classifier import (
    Classification,
    MessageClassifier,
    calculate_pipeline_confidence,
    fallback_classification,
)
from core.intent.extraction import ArgumentExtractor, build_extraction_prompt, extract_swap_arguments_regex
from core.intent.pipeline import validate_pipeline
from core.intent.service import IntentService
from core.intent.validation import validate_and_resolve_arguments, validate_portfolio_arguments

__all__ = [
    "ArgumentExtractor",
    "Classification",
    "IntentService",
    "MessageClassifier",
    "build_extraction_prompt",
    "calculate_pipeline_confidence",
    "extract_swap_arguments_regex",
    "fallback_classification",
    "validate_and_resolve_arguments",
    "validate_pipeline",
    "validate_portfolio_arguments",
]
