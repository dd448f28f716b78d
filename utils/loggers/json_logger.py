from datetime import datetime
import os
import logging
import json
import sys

# Structured JSON logging for the chain engine


class JsonLogger(logging.Formatter):
    """Formatter that renders each log record as a single JSON line."""

    def format(self, record):
        """
        Format the log record as a JSON string.

        Chat text is frequently non-ASCII, so the output keeps unicode
        characters as-is instead of escaping them.

        Args:
            record: The log record to format

        Returns:
            str: JSON formatted log string
        """
        log_data = {
            'timestamp': datetime.now().isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'line': record.lineno,
            'function': record.funcName
        }

        # Structured payload passed through extra={"metrics": {...}}
        if hasattr(record, 'metrics'):
            log_data['metrics'] = record.metrics

        if record.exc_info:
            log_data['exception'] = {
                'type': str(record.exc_info[0].__name__),
                'message': str(record.exc_info[1]),
                'traceback': self.formatException(record.exc_info)
            }

        return json.dumps(log_data, ensure_ascii=False, default=str)


def get_project_root():
    """
    Get the absolute path to the project root directory.

    Returns:
        str: Path to project root directory
    """
    current_dir = os.path.dirname(os.path.abspath(__file__))

    # utils/loggers -> project root
    return os.path.abspath(os.path.join(current_dir, '..', '..'))


def determine_log_path(log_file=None):
    """
    Resolve the file the logger should write to, creating its directory.

    Args:
        log_file (str, optional): Explicit log file path. When omitted a
            timestamped file under <project_root>/logs is used.

    Returns:
        str: Path to use for logging
    """
    if not log_file:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = os.path.join(
            get_project_root(), 'logs', f"markov_chat_{timestamp}.log")

    log_dir = os.path.dirname(log_file)
    if log_dir and not os.path.exists(log_dir):
        try:
            os.makedirs(log_dir, exist_ok=True)
        except OSError as e:
            print(f"Error creating log directory {log_dir}: {e}")
            log_file = os.path.join('/tmp', os.path.basename(log_file))

    return log_file


def get_logger(logger_name, log_file=None, clear_existing=True, console_json=True,
               console_level=logging.INFO):
    """
    Get a configured logger instance with JSON formatting.

    Args:
        logger_name (str): Name for the logger
        log_file (str, optional): Path to a log file; no file handler when None
        clear_existing (bool): Whether to clear existing handlers
        console_json (bool): Whether to use JSON formatting for console output
        console_level (int or str): Minimum level written to the console

    Returns:
        logging.Logger: Configured logger instance
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.DEBUG)

    if clear_existing and logger.handlers:
        logger.handlers.clear()

    if logger.handlers:
        return logger

    # Console output goes to stderr so stdout stays clean for generated text
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)

    if console_json:
        console_handler.setFormatter(JsonLogger())
    else:
        console_handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))

    logger.addHandler(console_handler)

    if log_file is not None:
        file_handler = logging.FileHandler(
            determine_log_path(log_file), encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JsonLogger())
        logger.addHandler(file_handler)

    return logger


def log_json(logger, message, data=None):
    """
    Log a message with optional structured data.

    Args:
        logger (logging.Logger): Logger instance
        message (str): Log message
        data (dict, optional): Data to include under "metrics"
    """
    if data is None:
        logger.info(message)
    else:
        logger.info(message, extra={"metrics": data})
