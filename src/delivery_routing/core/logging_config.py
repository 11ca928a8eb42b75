import logging
import sys

_configured = False


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Configure logging for the service.

    Logs go to stdout with timestamps, levels and module names. Safe to call
    more than once; only the first call installs the handler.
    """
    global _configured
    if not _configured:
        logging.basicConfig(
            level=level.upper(),
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
            handlers=[logging.StreamHandler(sys.stdout)],
        )
        # Request lines from the HTTP clients drown out routing logs
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
        logging.getLogger("urllib3").setLevel(logging.WARNING)
        _configured = True

    return logging.getLogger("delivery_routing")
