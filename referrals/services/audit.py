from typing import Optional, Any, Dict
from referrals.models import AuditEvent



def log_action(*, user, action: str, object_type: Optional[str]=None, object_id=None, detail: Optional[Dict[str, Any]]=None) -> AuditEvent:
    """Append an audit row; ``user`` may be an account, an actor or ``None``."""
    user_id = getattr(user, 'id', None)
    return AuditEvent.objects.create(
        user_id=user_id,
        action=action,
        object_type=object_type,
        object_id=str(object_id) if object_id is not None else None,
        detail=detail or {},
    )
