import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any, Dict

from loguru import logger

from editorial.config.settings import settings
from editorial.utils.context import get_request_id

PLAIN_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[request_id]} | "
    "{name}:{function}:{line} - {message}"
)

DEFAULT_LOGGING_CONFIG = {
    "logger": {
        "log_dir": "logs",
        "filename": "editorial.log",
        "rotation": "20 MB",
        "retention": "14 days",
        "console_format": (
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
            "<cyan>{extra[request_id]}</cyan> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:"
            "<cyan>{line}</cyan> - <level>{message}</level>"
        ),
        "file_format": PLAIN_FORMAT,
        "use_json_logs": False,
    }
}

INTERCEPTED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi", "sqlalchemy.engine")


def _attach_request_id(record: Dict[str, Any]) -> None:
    # Evaluated per record so workflow logs carry the id of the request being served
    record["extra"]["request_id"] = get_request_id() or record["extra"].get("request_id", "app")


class InterceptHandler(logging.Handler):
    """Routes stdlib logging (uvicorn, SQLAlchemy echo) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


class CustomizeLogger:
    @classmethod
    def make_logger(cls, config_path: Path, environment: str = "logger"):
        config = cls.load_logging_config(config_path)
        logging_config = config.get(environment, config["logger"])

        filename = logging_config.get("filename")
        return cls.customize_logging(
            log_dir=logging_config.get("log_dir"),
            filename=f"{date.today().isoformat()}-{filename}" if filename else None,
            level=logging_config.get("level") or settings.LOG_LEVEL,
            rotation=logging_config.get("rotation"),
            retention=logging_config.get("retention"),
            console_format=logging_config.get("console_format", PLAIN_FORMAT),
            file_format=logging_config.get("file_format", PLAIN_FORMAT),
            use_json_logs=logging_config.get("use_json_logs", False),
        )

    @classmethod
    def customize_logging(
        cls,
        log_dir: str,
        filename: str,
        level: str,
        rotation: str,
        retention: str,
        console_format: str,
        file_format: str,
        use_json_logs: bool = False,
    ):
        logger.remove()
        logger.configure(extra={"request_id": "app"}, patcher=_attach_request_id)
        level = level.upper()

        logger.add(
            sys.stdout,
            enqueue=True,
            backtrace=True,
            level=level,
            format=console_format,
            colorize=True,
        )

        # An empty log_dir keeps console output only
        if log_dir and filename:
            file_sink = str(Path(log_dir) / filename)
            if use_json_logs:
                logger.add(
                    file_sink,
                    rotation=rotation,
                    retention=retention,
                    enqueue=True,
                    level=level,
                    serialize=True,
                )
            else:
                logger.add(
                    file_sink,
                    rotation=rotation,
                    retention=retention,
                    enqueue=True,
                    backtrace=True,
                    level=level,
                    format=file_format,
                    colorize=False,
                )

        cls._setup_intercept_handlers()
        return logger

    @staticmethod
    def _setup_intercept_handlers():
        logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
        for log_name in INTERCEPTED_LOGGERS:
            stdlib_logger = logging.getLogger(log_name)
            stdlib_logger.handlers = [InterceptHandler()]
            stdlib_logger.propagate = False

    @staticmethod
    def load_logging_config(config_path: Path) -> Dict[str, Any]:
        if not config_path.is_file():
            return DEFAULT_LOGGING_CONFIG
        with open(config_path) as config_file:
            return json.load(config_file)


custom_logger = CustomizeLogger.make_logger(
    Path(settings.LOG_CONFIG_PATH),
    "production" if settings.ENVIRONMENT == "production" else "logger",
)


def get_logger():
    """Module-level logger; the current request id is attached to each record."""
    return custom_logger
