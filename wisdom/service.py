# wisdom/service.py

import logging
import signal
from typing import Optional

from wisdom.config import WisdomConfig
from wisdom.content.capability import Capability
from wisdom.content.generator import ContentGenerator
from wisdom.http.server import WisdomServer

logger = logging.getLogger(__name__)


class WisdomService:
    def __init__(self, config: Optional[WisdomConfig] = None, capability: Optional[Capability] = None):
        """
        Initialize WisdomService.

        Args:
            config: Configuration (default: loaded from environment)
            capability: Probe result (default: probed now, once)
        """
        self.config = config or WisdomConfig.load_config()

        quote_argv = self.config.quote_argv
        formatter_argv = self.config.formatter_argv

        self.capability = capability or Capability.probe(quote_argv, formatter_argv)
        self._report_prerequisites()

        self.generator = ContentGenerator(
            capability=self.capability,
            quote_argv=quote_argv,
            formatter_argv=formatter_argv,
            timeout=self.config.generate_timeout_sec,
        )

        self.server = WisdomServer(
            host=self.config.host,
            port=self.config.port,
            generator=self.generator,
            backlog=self.config.backlog,
            write_timeout=self.config.write_timeout_sec,
            linger=self.config.linger_sec,
            concurrent=self.config.concurrent,
        )

    def _report_prerequisites(self) -> None:
        quote_name = self.config.quote_argv[0]
        formatter_name = self.config.formatter_argv[0]

        if not self.capability.quote_source_available:
            logger.warning(
                f"Quote source {quote_name!r} not found on PATH; "
                "every request will be answered with 500 until it is installed"
            )
        if not self.capability.formatter_available:
            logger.warning(
                f"Text-art formatter {formatter_name!r} not found on PATH; "
                "serving plain quotes"
            )

    def start(self) -> None:
        """
        Bind the listening socket. The only fatal startup step.

        Raises:
            BindError: If the port cannot be bound
        """
        logger.info("=== Wisdom starting ===")
        self.server.bind()
        logger.info(f"Wisdom served on port={self.server.address[1]}...")

    def run_forever(self) -> None:
        """Serve until stop() is called (e.g. by SIGTERM)."""
        self.server.serve_forever()
        logger.info(f"Wisdom stopped: {self.server.stats()}")

    def stop(self) -> None:
        self.server.stop()

    def stats(self) -> dict:
        return self.server.stats()

    def install_signal_handlers(self) -> None:
        """Stop the accept loop on SIGTERM and SIGINT. Main thread only."""
        def _handle(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, shutting down")
            self.stop()

        signal.signal(signal.SIGTERM, _handle)
        signal.signal(signal.SIGINT, _handle)
