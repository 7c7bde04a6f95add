import html
from typing import Optional

import bleach

from referrals.exceptions import InvalidArgument
from referrals.models import Hospital


def paginate(qs, page=None, limit=None, *, default_limit: int = 10, max_limit: int = 100):
    """Slice ``qs`` and return ``(items, pagination)`` in the API's shape."""
    try:
        page = max(1, int(page or 1))
        limit = min(max_limit, max(1, int(limit or default_limit)))
    except (TypeError, ValueError):
        raise InvalidArgument('page and limit must be integers')
    total = qs.count()
    start = (page - 1) * limit
    items = list(qs[start:start + limit])
    return items, {'current': page, 'limit': limit, 'pages': (total + limit - 1) // limit, 'total': total}


def existing_hospital(hospital_id, *, label: str = 'Hospital') -> Hospital:
    hospital = Hospital.objects.filter(pk=hospital_id).first() if hospital_id else None
    if hospital is None:
        raise InvalidArgument(f'{label} does not exist')
    return hospital


def iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def plain_text(value, *, unescape: bool = False) -> str:
    """Strip every tag from ``value``.

    Message bodies keep bleach's entity escaping since clients render them
    as HTML; names are stored unescaped (``unescape=True``) because they
    also end up in plain-text emails.
    """
    text = bleach.clean((value or '').strip(), tags=set(), attributes={}, strip=True)
    return html.unescape(text).strip() if unescape else text.strip()
