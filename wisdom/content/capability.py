# wisdom/content/capability.py

import logging
import shutil
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class Capability:
    """
    Snapshot of which external utilities are resolvable on this host.

    Taken once at startup and handed to the ContentGenerator, so the command
    search path is not re-probed on every request.
    """
    quote_source_path: Optional[str]
    formatter_path: Optional[str]

    @property
    def quote_source_available(self) -> bool:
        return self.quote_source_path is not None

    @property
    def formatter_available(self) -> bool:
        return self.formatter_path is not None

    @classmethod
    def probe(cls, quote_argv: List[str], formatter_argv: List[str]) -> "Capability":
        """
        Resolve both executables on PATH.

        Args:
            quote_argv: argv of the quote source (only argv[0] is probed)
            formatter_argv: argv of the text-art formatter (only argv[0] is probed)

        Returns:
            Capability with resolved paths, None for anything missing
        """
        quote_path = shutil.which(quote_argv[0])
        formatter_path = shutil.which(formatter_argv[0])

        logger.debug(
            f"Capability probe: quote source {quote_argv[0]!r} -> {quote_path}, "
            f"formatter {formatter_argv[0]!r} -> {formatter_path}"
        )

        return cls(quote_source_path=quote_path, formatter_path=formatter_path)
