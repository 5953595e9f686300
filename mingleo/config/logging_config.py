# mingleo/config/logging_config.py
# =============================================================================
# File: mingleo/config/logging_config.py
# Description: Logging configuration using the Rich framework
# =============================================================================

import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime
from typing import Any, Dict, Optional

from rich.box import MINIMAL, ROUNDED
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    value = os.getenv(key, '').lower()
    return value in ('true', '1', 'yes', 'on') if value else default


def get_env_int(key: str, default: int) -> int:
    """Get integer value from environment variable."""
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return default


# Muted theme shared by the console handler and the helper panels
MINGLEO_THEME = Theme({
    "debug": "magenta dim",
    "info": "green",
    "warning": "dark_goldenrod",
    "error": "red",
    "critical": "bold red",
    "timestamp": "grey70",
    "logger_name": "grey35",
    "message": "grey85",
    "frame": "bright_blue",
})

PLAIN_FORMAT = "[%(asctime)s] [%(levelname)-8s] [%(name)-40s] %(message)s"
PLAIN_DATEFMT = "%Y-%m-%d %H:%M:%S"


class MingleoRichHandler(RichHandler):
    """RichHandler with a compact single-line runtime layout"""

    def __init__(self, *args, **kwargs):
        kwargs.setdefault('show_time', False)
        kwargs.setdefault('show_level', False)
        kwargs.setdefault('show_path', False)
        kwargs.setdefault('enable_link_path', False)
        kwargs.setdefault('markup', True)
        kwargs.setdefault('rich_tracebacks', True)
        kwargs.setdefault('tracebacks_show_locals', False)
        super().__init__(*args, **kwargs)

    def format(self, record: logging.LogRecord) -> str:
        """Format with custom layout for runtime logs"""
        time_str = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')

        level_styles = {
            'DEBUG': 'debug',
            'INFO': 'info',
            'WARNING': 'warning',
            'ERROR': 'error',
            'CRITICAL': 'critical',
        }
        level_style = level_styles.get(record.levelname, 'white')
        level_str = f"[{level_style}]{record.levelname:>7}[/{level_style}]"

        logger_name = record.name
        if len(logger_name) > 30:
            parts = logger_name.split('.')
            if len(parts) > 2:
                logger_name = f"{parts[0]}...{parts[-1]}"
        logger_str = f"[logger_name]{logger_name:>30}[/logger_name]"

        message = record.getMessage()
        if get_env_bool('LOG_CALLER_INFO', False) and record.pathname:
            message = f"{message} [{record.filename}:{record.lineno}]"

        return f"[timestamp]{time_str}[/timestamp] {level_str} {logger_str}  {message}"

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.console.print(self.format(record), soft_wrap=True)
            if record.exc_info and self.rich_tracebacks:
                self.console.print_exception()
        except Exception:
            self.handleError(record)


class ProductionFormatter(logging.Formatter):
    """JSON formatter for production environments"""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON"""
        log_obj = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if get_env_bool('LOG_JSON_INCLUDE_EXTRAS', True):
            for extra in ('user_id', 'chat_id', 'topic'):
                if hasattr(record, extra):
                    log_obj[extra] = getattr(record, extra)

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str)


def get_logger_level_from_env(logger_name: str, default_level: int) -> int:
    """Get logger level from environment variable.

    e.g., "mingleo.sync.subscriber" -> "LOGLEVEL_MINGLEO_SYNC_SUBSCRIBER"
    """
    env_name = f"LOGLEVEL_{logger_name.replace('.', '_').upper()}"

    level_str = os.getenv(env_name, '').upper()
    if level_str:
        level_map = {
            'DEBUG': logging.DEBUG,
            'INFO': logging.INFO,
            'WARNING': logging.WARNING,
            'WARN': logging.WARNING,
            'ERROR': logging.ERROR,
            'CRITICAL': logging.CRITICAL,
        }
        return level_map.get(level_str, default_level)

    return default_level


def setup_logging(
        service_name: str = "mingleo",
        log_level: Optional[str] = None,
        log_file: Optional[str] = None,
        enable_json: bool = None,
) -> None:
    """
    Configure logging for the client process.

    Args:
        service_name: Name used for the startup logger
        log_level: Override log level (default: LOG_LEVEL env or INFO)
        log_file: Optional log file path (default: LOG_FILE env)
        enable_json: Enable JSON formatting (default: LOG_JSON_FORMAT env)
    """
    level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_file = log_file or os.getenv("LOG_FILE")

    if enable_json is None:
        enable_json = get_env_bool('LOG_JSON_FORMAT', False)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    use_rich = not enable_json and (
            sys.stdout.isatty() or
            get_env_bool("FORCE_COLOR", False)
    )

    if use_rich:
        console = Console(
            theme=MINGLEO_THEME,
            force_terminal=get_env_bool("FORCE_COLOR", False),
            width=get_env_int('LOG_CONSOLE_WIDTH', 0) or None,
        )
        root_logger.addHandler(MingleoRichHandler(console=console))

    elif enable_json:
        json_handler = logging.StreamHandler(sys.stdout)
        json_handler.setFormatter(ProductionFormatter())
        root_logger.addHandler(json_handler)

    else:
        plain_handler = logging.StreamHandler(sys.stdout)
        plain_handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt=PLAIN_DATEFMT))
        root_logger.addHandler(plain_handler)

    if log_file:
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=get_env_int('LOG_MAX_SIZE_MB', 20) * 1024 * 1024,
            backupCount=get_env_int('LOG_BACKUP_COUNT', 3),
            encoding=os.getenv('LOG_FILE_ENCODING', 'utf-8'),
        )
        # Always plain for files
        file_handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt=PLAIN_DATEFMT))
        root_logger.addHandler(file_handler)

    default_noise_config = {
        "httpx": logging.WARNING,
        "httpcore": logging.WARNING,
        "asyncio": logging.WARNING,

        # Mingleo components
        "mingleo.sync.reconciler": logging.INFO,
        "mingleo.sync.subscriber": logging.INFO,
        "mingleo.retry": logging.WARNING,
    }

    for logger_name, default_level in default_noise_config.items():
        logging.getLogger(logger_name).setLevel(
            get_logger_level_from_env(logger_name, default_level)
        )

    logger = logging.getLogger(f"{service_name}.startup")
    logger.info(f"Logging configured for {service_name}")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def log_metrics_table(logger: logging.Logger, title: str, metrics: Dict[str, Any]):
    """Log metrics in a table; plain lines when no terminal is attached"""
    if not sys.stdout.isatty() and not get_env_bool("FORCE_COLOR", False):
        logger.info(f"{title}:")
        for key, value in metrics.items():
            logger.info(f"  {key}: {value}")
        return

    console = Console(theme=MINGLEO_THEME)

    table = Table(
        title=title,
        show_header=True,
        header_style="white on grey30",
        box=MINIMAL,
        padding=(0, 1)
    )
    table.add_column("Metric", style="cyan", width=30)
    table.add_column("Value", style="white", justify="right", width=15)

    for key, value in metrics.items():
        formatted_key = key.replace('_', ' ').title()
        if isinstance(value, float):
            formatted_value = f"{value:,.2f}"
        elif isinstance(value, int):
            formatted_value = f"{value:,}"
        else:
            formatted_value = str(value)
        table.add_row(formatted_key, formatted_value)

    panel = Panel(
        table,
        border_style="frame",
        box=ROUNDED,
        padding=(1, 1),
        width=min(console.width - 2, 60),
    )

    console.print()
    console.print(panel)
    console.print()
