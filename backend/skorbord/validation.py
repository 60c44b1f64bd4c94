import re
from datetime import datetime, timezone

from skorbord.errors import ValidationError
from skorbord.models import CONDITION_KINDS, REACH_TARGET, FALL_BELOW_FLOOR

_UUID_RE = re.compile(r'^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$', re.I)
_SHORT_ID_RE = re.compile(r'^[a-z0-9]{4,36}$')

# Older clients send win/lose instead of the condition kind
_CONDITION_ALIASES = {
    'win': REACH_TARGET,
    'lose': FALL_BELOW_FLOOR,
}

MAX_NAME_LENGTH = 64


def is_valid_id(value) -> bool:
    if not isinstance(value, str):
        return False
    return bool(_UUID_RE.match(value) or _SHORT_ID_RE.match(value))


def sanitize_name(name, field='name') -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(f'{field} is required')
    trimmed = name.strip()
    if len(trimmed) > MAX_NAME_LENGTH:
        raise ValidationError(f'{field} must be {MAX_NAME_LENGTH} characters or less')
    return trimmed


def require_int(value, field) -> int:
    # bool is an int subclass; JSON true must not count as 1
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f'{field} must be an integer')
    return value


def normalize_condition_kind(kind) -> str:
    if not isinstance(kind, str):
        raise ValidationError('win condition type must be a string')
    kind = _CONDITION_ALIASES.get(kind.strip().lower(), kind.strip().lower())
    if kind not in CONDITION_KINDS:
        raise ValidationError(f"win condition type must be one of {', '.join(CONDITION_KINDS)}")
    return kind


def parse_timestamp(value, field='timestamp') -> datetime:
    """ISO-8601 string to naive UTC datetime."""
    if not isinstance(value, str):
        raise ValidationError(f'{field} must be an ISO-8601 string')
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(f'{field} must be an ISO-8601 string')
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
