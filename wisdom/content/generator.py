# wisdom/content/generator.py

import logging
from typing import List

from wisdom.content.capability import Capability
from wisdom.content.pipeline import GenerationError, run_pipeline

logger = logging.getLogger(__name__)


class ContentGenerator:
    """
    Produces one fresh response blob per call.

    With the text-art formatter available the blob is `quote | formatter`;
    without it the blob is the raw quote text. A formatter that is present
    but fails at runtime is a GenerationError, not a fallback.
    """

    def __init__(
        self,
        capability: Capability,
        quote_argv: List[str],
        formatter_argv: List[str],
        timeout: float = 5.0,
    ):
        """
        Initialize ContentGenerator.

        Args:
            capability: Result of the startup probe
            quote_argv: argv of the quote source
            formatter_argv: argv of the text-art formatter
            timeout: Bound in seconds on each generation
        """
        self.capability = capability
        self.quote_argv = list(quote_argv)
        self.formatter_argv = list(formatter_argv)
        self.timeout = timeout

    @property
    def commands(self) -> List[List[str]]:
        """The pipeline stages generate() runs."""
        if self.capability.formatter_available:
            return [self.quote_argv, self.formatter_argv]
        return [self.quote_argv]

    def generate(self) -> bytes:
        """
        Run the pipeline once.

        Returns:
            Non-empty blob bytes

        Raises:
            GenerationError: If the pipeline fails or produces nothing
        """
        blob = run_pipeline(self.commands, timeout=self.timeout)
        if not blob:
            raise GenerationError("Pipeline produced no output")
        logger.debug(f"Generated {len(blob)} byte blob")
        return blob
