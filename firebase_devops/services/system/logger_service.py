"""
Centralized Logging Service for the Firebase DevOps Toolkit

This module provides a unified logging interface with:
- Structured JSON output
- File rotation (prevents disk fill)
- Colored console output on stderr (stdout is reserved for command results)
- Contextual logging with extra fields (project_id, service, stage, etc.)


Usage:
    from firebase_devops.services.system.logger_service import get_logger

    logger = get_logger(__name__)
    logger.info("Service copied", extra={"service": "scoring-service", "files": 4})
    logger.error("Deploy failed", extra={"error": str(e)}, exc_info=True)
"""

import logging
import json
import sys
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Dict, Any, List, Optional
from pathlib import Path


_RESERVED_ATTRS = frozenset([
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'message', 'pathname', 'process', 'processName',
    'relativeCreated', 'thread', 'threadName', 'exc_info',
    'exc_text', 'stack_info', 'extra_fields', 'taskName',
])


class JSONFormatter(logging.Formatter):
    """
    Custom JSON formatter for structured logging.
    Outputs logs in JSON format for easy parsing by log aggregation tools.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON string"""

        def _infer_feature(logger_name: str) -> str:
            parts = logger_name.split('.') if logger_name else []
            for anchor in ('features', 'services'):
                if anchor in parts:
                    idx = parts.index(anchor)
                    if idx + 1 < len(parts):
                        return parts[idx + 1]
            if parts:
                return parts[0]
            return 'unknown'

        log_data: Dict[str, Any] = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
            'component': 'firebase-devops',
            'feature': _infer_feature(record.name),
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        # Any custom fields passed via extra={}
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS:
                continue
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable colored formatter for console output.
    """

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m',
    }

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors for console"""
        if self.use_color:
            level_color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
            level = f"{level_color}{record.levelname:8s}{self.COLORS['RESET']}"
        else:
            level = f"{record.levelname:8s}"

        timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S')
        message = record.getMessage()

        extra_parts = [
            f"{key}={value}"
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS
        ]
        if extra_parts:
            message += f" | {' '.join(extra_parts)}"

        # Format: [2024-11-16 10:30:45] INFO     [deployment.validator] Validation passed
        short_name = '.'.join(record.name.split('.')[-2:])
        log_line = f"[{timestamp}] {level} [{short_name}] {message}"

        if record.exc_info:
            log_line += '\n' + self.formatException(record.exc_info)

        return log_line


class LoggerService:
    """
    Centralized logger service singleton.
    Manages all logging configuration and provides logger instances.
    """

    _instance = None
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(LoggerService, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        if not self._initialized:
            self._initialize_logging()
            LoggerService._initialized = True

    def _initialize_logging(self):
        """Set up logging configuration"""
        log_dir = Path(os.getenv('LOG_DIR', Path.cwd() / 'logs'))
        log_dir.mkdir(parents=True, exist_ok=True)

        log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
        log_level = getattr(logging, log_level_str, logging.INFO)

        environment = os.getenv('ENVIRONMENT', 'development').lower()

        root_logger = logging.getLogger()
        root_logger.setLevel(logging.DEBUG)
        root_logger.handlers.clear()

        # 1. JSON File Handler (log aggregation)
        json_handler = RotatingFileHandler(
            log_dir / 'firebase_devops.json.log',
            maxBytes=10 * 1024 * 1024,  # 10MB per file
            backupCount=5,
            encoding='utf-8'
        )
        json_handler.setLevel(log_level)
        json_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(json_handler)

        # 2. Human-readable File Handler
        text_handler = RotatingFileHandler(
            log_dir / 'firebase_devops.log',
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding='utf-8'
        )
        text_handler.setLevel(log_level)
        text_handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] [%(name)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        root_logger.addHandler(text_handler)

        # 3. Console Handler (operator feedback)
        self.console_handler: Optional[logging.Handler] = None
        if environment != 'production':
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(log_level)
            console_handler.setFormatter(ConsoleFormatter(use_color=sys.stderr.isatty()))
            root_logger.addHandler(console_handler)
            self.console_handler = console_handler

        # Vendor HTTP clients are noisy at DEBUG
        logging.getLogger('urllib3').setLevel(logging.WARNING)
        logging.getLogger('google').setLevel(logging.WARNING)

        init_logger = logging.getLogger(__name__)
        init_logger.debug(
            "Logging initialized",
            extra={
                'environment': environment,
                'log_level': log_level_str,
                'log_dir': str(log_dir),
            }
        )

    def set_console_level(self, level: int) -> None:
        """Raise or lower console verbosity without touching the file handlers."""
        if self.console_handler is not None:
            self.console_handler.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        Configured logger instance
    """
    LoggerService()
    return logging.getLogger(name)


def log_command(logger: logging.Logger, argv: List[str], cwd: Optional[str] = None, **kwargs):
    """
    Helper to log an external command invocation with consistent format.

    Args:
        logger: Logger instance
        argv: Command and arguments
        cwd: Working directory the command runs in
        **kwargs: Additional context
    """
    logger.debug(
        f"$ {' '.join(argv)}",
        extra={
            'command': argv[0] if argv else '',
            'argv': list(argv),
            'cwd': cwd,
            **kwargs
        }
    )


def log_stage(logger: logging.Logger, stage: str, project_id: Optional[str] = None, **kwargs):
    """
    Helper to log a deployment lifecycle stage with consistent format.

    Args:
        logger: Logger instance
        stage: Stage name (PREPARING, VALIDATING, DEPLOYING, etc.)
        project_id: Target Firebase project
        **kwargs: Additional context
    """
    logger.info(
        f"Deployment {stage}",
        extra={
            'stage': stage,
            'project_id': project_id,
            **kwargs
        }
    )


def log_error(logger: logging.Logger, error: Exception, context: Optional[Dict[str, Any]] = None):
    """
    Helper to log errors with full context and traceback.

    Args:
        logger: Logger instance
        error: Exception object
        context: Optional context dictionary
    """
    logger.error(
        f"Error: {str(error)}",
        extra={
            'error_type': type(error).__name__,
            'error_message': str(error),
            **(context or {})
        },
        exc_info=True
    )


# Initialize logging when module is imported
_logger_service = LoggerService()
