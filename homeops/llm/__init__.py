"""
homeops/llm — classification adapter and model backends.

Privacy: message text is sent to the backend, never to the logs.
"""

from homeops.llm.classifier import ClassificationAdapter
from homeops.llm.openai_adapter import OpenAIAdapter
from homeops.llm.schema import parse_classification

__all__ = [
    "ClassificationAdapter",
    "OpenAIAdapter",
    "parse_classification",
]
