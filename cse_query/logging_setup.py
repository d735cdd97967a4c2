"""
Logging setup and configuration for cse-query.

Console output goes to stderr so that stdout only carries the profile.
An optional log directory adds a daily rotated file log.
"""

import os
import re
import sys
import logging
import logging.handlers
from typing import Any, Dict, Optional


class SensitiveDataFilter(logging.Filter):
    """Filter to scrub sensitive data from log messages."""

    SENSITIVE_KEYWORDS = [
        'password', 'bind_password', 'secret', 'credential', 'pass', 'pwd',
    ]

    def filter(self, record):
        """Filter out sensitive data from log records."""
        if hasattr(record, 'msg'):
            msg = str(record.msg)

            for keyword in self.SENSITIVE_KEYWORDS:
                # key=value
                pattern1 = rf'({keyword}\s*=\s*)[^\s,}}\]]+(\s|,|$)'
                msg = re.sub(pattern1, r'\1****\2', msg, flags=re.IGNORECASE)

                # "key": "value"
                pattern2 = rf'("{keyword}"\s*:\s*")[^"]*(")'
                msg = re.sub(pattern2, r'\1****\2', msg, flags=re.IGNORECASE)

                # 'key': 'value', as printed for a dict
                pattern3 = rf"('{keyword}'\s*:\s*')[^']*(')"
                msg = re.sub(pattern3, r'\1****\2', msg, flags=re.IGNORECASE)

            record.msg = msg

        return True


class LoggingManager:
    """Manages logging configuration for the command-line tool."""

    def __init__(self):
        self.configured = False
        self.log_dir = None
        self.handlers = []

    def setup_logging(self, config: Optional[Dict[str, Any]], stream=None) -> None:
        """
        Set up logging based on configuration.

        Args:
            config: Logging configuration dictionary
            stream: Console stream, stderr by default
        """
        if self.configured:
            return

        logging_config = config if config else {}

        log_level = str(logging_config.get('level', 'WARNING')).upper()
        self.log_dir = logging_config.get('log_dir')
        retention_days = logging_config.get('retention_days', 7)

        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, log_level, logging.WARNING))
        root_logger.handlers.clear()

        sensitive_filter = SensitiveDataFilter()

        console_handler = logging.StreamHandler(stream or sys.stderr)
        console_handler.setLevel(getattr(logging, log_level, logging.WARNING))
        console_handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%H:%M:%S'
        ))
        console_handler.addFilter(sensitive_filter)
        root_logger.addHandler(console_handler)
        self.handlers.append(console_handler)

        if self.log_dir:
            os.makedirs(self.log_dir, exist_ok=True)
            file_handler = logging.handlers.TimedRotatingFileHandler(
                filename=os.path.join(self.log_dir, 'cse_query.log'),
                when='midnight',
                interval=1,
                backupCount=retention_days,
                encoding='utf-8'
            )
            file_handler.suffix = '%Y-%m-%d'
            file_handler.setLevel(getattr(logging, log_level, logging.WARNING))
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            ))
            file_handler.addFilter(sensitive_filter)
            root_logger.addHandler(file_handler)
            self.handlers.append(file_handler)

        self.configured = True

        logger = logging.getLogger(__name__)
        logger.debug(f"Logging configured: level={log_level}, dir={self.log_dir}")

    def reset(self) -> None:
        """Remove installed handlers so logging can be configured again."""
        root_logger = logging.getLogger()
        for handler in self.handlers:
            root_logger.removeHandler(handler)
            handler.close()
        self.configured = False
        self.log_dir = None
        self.handlers = []


# Global logging manager instance
_logging_manager = LoggingManager()


def setup_logging(config: Optional[Dict[str, Any]], stream=None) -> None:
    """
    Convenience function to set up logging.

    Args:
        config: Logging configuration dictionary
        stream: Console stream, stderr by default
    """
    _logging_manager.setup_logging(config, stream=stream)


def reset_logging() -> None:
    _logging_manager.reset()


class SecurityAuditLogger:
    """Special logger for security-related events."""

    def __init__(self):
        self.logger = logging.getLogger('security')

    def log_bind_attempt(self, directory: str, username: str, success: bool):
        """Log authenticated bind attempts."""
        status = "SUCCESS" if success else "FAILURE"
        self.logger.info(f"Bind {status}: {directory} user={username}")

    def log_delegated_query(self, auth_user: str, subject: str):
        """Log a query made with another user's credentials."""
        self.logger.info(f"Delegated query: user={auth_user} subject={subject}")


# Global security logger instance
security_logger = SecurityAuditLogger()
