import json
import logging
import re
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from contextvars import ContextVar

# Context variables for correlation
group_id_var: ContextVar[Optional[str]] = ContextVar('group_id', default=None)
member_id_var: ContextVar[Optional[str]] = ContextVar('member_id', default=None)
stage_var: ContextVar[Optional[str]] = ContextVar('stage', default=None)


class SecretMasker:
    """Masks sensitive information in log messages."""

    def __init__(self):
        """Initialize secret masker with patterns."""
        self.patterns = [
            # Spotify access/refresh tokens
            r'(?i)(access_token|refresh_token)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{20,})["\']?',
            # API tokens and keys
            r'(?i)(token|key|secret|password)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{10,})["\']?',
            # Client secrets
            r'(?i)(client_secret)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{20,})["\']?',
            # Bearer credentials
            r'(?i)(bearer)[\s]+["\']?([a-zA-Z0-9\-_\.]{20,})["\']?',
            # OAuth codes
            r'(?i)(code|authorization_code)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{20,})["\']?',
        ]

        self.compiled_patterns = [re.compile(pattern) for pattern in self.patterns]

    def mask_secrets(self, text: str) -> str:
        """Mask sensitive information in text."""
        if not text:
            return text

        masked_text = text

        for pattern in self.compiled_patterns:
            def replace_match(match):
                return f"{match.group(1)}: {self.mask_value(match.group(2))}"

            masked_text = pattern.sub(replace_match, masked_text)

        return masked_text

    def mask_value(self, secret: str) -> str:
        """Keep first 4 and last 4 characters of a secret, mask the rest."""
        if len(secret) > 8:
            return secret[:4] + "*" * (len(secret) - 8) + secret[-4:]
        return "*" * len(secret)

    def mask_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Mask sensitive values in a dictionary, including keys that name a token."""
        if not data:
            return data

        masked_data = {}

        for key, value in data.items():
            if isinstance(value, str) and re.search(r'(?i)token|secret', str(key)):
                masked_data[key] = self.mask_value(value)
            elif isinstance(value, str):
                masked_data[key] = self.mask_secrets(value)
            elif isinstance(value, dict):
                masked_data[key] = self.mask_dict(value)
            elif isinstance(value, list):
                masked_data[key] = [self.mask_dict(item) if isinstance(item, dict)
                                    else self.mask_secrets(item) if isinstance(item, str)
                                    else item for item in value]
            else:
                masked_data[key] = value

        return masked_data


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self):
        """Initialize formatter."""
        super().__init__()
        self.masker = SecretMasker()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        group_id = group_id_var.get()
        member_id = member_id_var.get()
        stage = stage_var.get()

        log_entry = {
            'ts': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': self.mask_secrets(record.getMessage()),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if group_id:
            log_entry['groupId'] = group_id
        if member_id:
            log_entry['memberId'] = member_id
        if stage:
            log_entry['stage'] = stage

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        if hasattr(record, 'fields') and record.fields:
            log_entry['fields'] = self.masker.mask_dict(record.fields)

        return json.dumps(log_entry, ensure_ascii=False, default=str)

    def mask_secrets(self, text: str) -> str:
        """Mask secrets in text."""
        return self.masker.mask_secrets(text)


class CorrelationContext:
    """Context manager for correlation data."""

    def __init__(self, group_id: Optional[str] = None,
                 member_id: Optional[str] = None,
                 stage: Optional[str] = None):
        """Initialize correlation context."""
        self.group_id = group_id
        self.member_id = member_id
        self.stage = stage
        self._tokens = []

    def __enter__(self):
        """Set correlation context."""
        if self.group_id is not None:
            self._tokens.append((group_id_var, group_id_var.set(self.group_id)))
        if self.member_id is not None:
            self._tokens.append((member_id_var, member_id_var.set(self.member_id)))
        if self.stage is not None:
            self._tokens.append((stage_var, stage_var.set(self.stage)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Restore correlation context."""
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens = []


def setup_logging(level: str = 'INFO',
                  log_file: Optional[str] = None,
                  group_id: Optional[str] = None) -> logging.Logger:
    """Setup structured logging for the trackparty logger tree."""
    logger = logging.getLogger('trackparty')
    logger.setLevel(getattr(logging, level.upper()))

    logger.handlers.clear()

    formatter = StructuredFormatter()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if group_id:
        group_id_var.set(group_id)

    return logger


def get_logger(name: str = 'trackparty') -> logging.Logger:
    """Get logger with structured formatting."""
    return logging.getLogger(name)


def log_with_fields(logger: logging.Logger, level: str, message: str,
                    fields: Optional[Dict[str, Any]] = None, exc_info: bool = False, **kwargs):
    """Log message with additional fields."""
    levelno = getattr(logging, level.upper())
    if not logger.isEnabledFor(levelno):
        return

    merged = dict(fields or {})
    merged.update(kwargs)
    logger.log(levelno, message, exc_info=exc_info, extra={'fields': merged} if merged else None)


# Convenience functions for common logging patterns
def log_aggregation_start(logger: logging.Logger, group_id: str, member_count: int,
                          target_count: int, seed: Optional[int] = None, **kwargs):
    """Log aggregation start."""
    with CorrelationContext(group_id=group_id, stage='start'):
        log_with_fields(logger, 'INFO', 'Aggregation started', {
            'member_count': member_count,
            'target_count': target_count,
            'seeded': seed is not None,
            **kwargs
        })


def log_member_skipped(logger: logging.Logger, member_id: str, reason: str, **kwargs):
    """Log a member that contributes nothing to this run."""
    with CorrelationContext(member_id=member_id, stage='member_skipped'):
        log_with_fields(logger, 'INFO', 'Member skipped', {
            'reason': reason,
            **kwargs
        })


def log_member_contributed(logger: logging.Logger, member_id: str, unique_count: int,
                           source: str, **kwargs):
    """Log a member's contribution count."""
    with CorrelationContext(member_id=member_id, stage='member_contributed'):
        log_with_fields(logger, 'INFO', 'Member contributed tracks', {
            'unique_count': unique_count,
            'source': source,
            **kwargs
        })


def log_aggregation_complete(logger: logging.Logger, group_id: str, selected_count: int,
                             contributing_members: int, **kwargs):
    """Log aggregation completion."""
    with CorrelationContext(group_id=group_id, stage='complete'):
        log_with_fields(logger, 'INFO', 'Aggregation completed', {
            'selected_count': selected_count,
            'contributing_members': contributing_members,
            **kwargs
        })


def log_error(logger: logging.Logger, message: str, error: Exception, **kwargs):
    """Log error with exception details."""
    log_with_fields(logger, 'ERROR', message, {
        'error_type': type(error).__name__,
        'error_message': str(error),
        **kwargs
    }, exc_info=True)
