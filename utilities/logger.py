"""
Structured logging using structlog.
Provides JSON or console output plus a context-bound logger for auth events.
"""

import logging
import sys
from pathlib import Path
from typing import Optional
import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[str] = None,
    debug: bool = False
) -> None:
    """
    Set up structured logging with configurable output formats.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format (json or console)
        log_file: Optional log file path
        debug: Add callsite parameters to every event
    """

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if debug:
        processors.append(structlog.processors.CallsiteParameterAdder())

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(getattr(logging, log_level.upper()))
        file_handler.setFormatter(logging.Formatter('%(message)s'))
        logging.getLogger().addHandler(file_handler)

    logger = structlog.get_logger(__name__)
    logger.info(
        "Logging system initialized",
        level=log_level,
        format=log_format,
        file=str(log_file) if log_file else None,
        debug=debug
    )


class AuthEventLogger:
    """
    Logger for session lifecycle events.
    Never pass secrets or raw tokens to these methods.
    """

    def __init__(self, name: str = "session"):
        self.logger = structlog.get_logger(name)

    def log_registration(self, user_id: str, email: str) -> None:
        self.logger.info("User registered", user_id=user_id, email=email)

    def log_login(self, email: str, success: bool, user_id: Optional[str] = None) -> None:
        """Log a login attempt."""
        level = "info" if success else "warning"
        getattr(self.logger, level)(
            "Login attempt",
            email=email,
            user_id=user_id,
            success=success
        )

    def log_rotation(self, user_id: str, reason: str) -> None:
        """Log a credential rotation."""
        self.logger.info(
            "Session credentials rotated",
            user_id=user_id,
            reason=reason
        )

    def log_rejection(self, kind: str, reason: str, client: Optional[str] = None) -> None:
        """Log a rejected token verification."""
        self.logger.warning(
            "Token verification rejected",
            token_kind=kind,
            reason=reason,
            client=client
        )

    def log_throttled(self, client: str, failures: int) -> None:
        self.logger.warning(
            "Verification throttled",
            client=client,
            failures=failures
        )
