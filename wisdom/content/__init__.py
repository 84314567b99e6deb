"""
Wisdom content subsystem.

This package produces the response blob for each request:
- Capability: one-time probe for the quote source and text-art formatter
- ContentGenerator: runs the external pipeline and returns its output
"""

from wisdom.content.capability import Capability
from wisdom.content.generator import ContentGenerator
from wisdom.content.pipeline import GenerationError, run_pipeline

__all__ = [
    "Capability",
    "ContentGenerator",
    "GenerationError",
    "run_pipeline",
]
