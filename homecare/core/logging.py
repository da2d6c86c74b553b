import logging
import sys
import structlog
from pythonjsonlogger import jsonlogger


def setup_logging(level: int = logging.INFO):
    """Structured logging setup shared by the API process and scripts"""

    # JSON formatter for the stdlib side (routers, crud, audit trail)
    json_formatter = jsonlogger.JsonFormatter(
        fmt="%(asctime)s %(name)s %(levelname)s %(message)s"
    )

    structlog.configure(
        processors=[
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer()  # Use JSON in production
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    if not any(getattr(h, "_homecare_handler", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(json_formatter)
        handler._homecare_handler = True
        root.addHandler(handler)
    root.setLevel(level)

    return structlog.get_logger()
