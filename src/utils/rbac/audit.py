"""
RBAC Audit Logging - Security event logging for access control

This module provides audit logging for handled requests and for
authorization decisions, supporting traceability of who did what and when.
Records go to the dedicated ``rbac.audit`` logger; route it to a durable
sink in deployment.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from src.utils.logging import get_logger

# Dedicated audit logger
audit_logger = get_logger('rbac.audit')


def build_request_record(
    *,
    user_id: Optional[str],
    user_email: Optional[str],
    action: str,
    resource: str,
    method: str,
    url: str,
    ip: Optional[str],
    user_agent: Optional[str],
    payload: Optional[Dict[str, Any]],
    resource_id: Optional[str] = None,
    status_code: Optional[int] = None,
    timestamp: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Build the audit record for one handled request.

    ``success`` follows the payload's own ``success`` field and is True
    unless that field is exactly False. Responses without a JSON object
    body fall back to the status code.
    """
    timestamp = timestamp or datetime.now(timezone.utc)

    if isinstance(payload, dict):
        success = payload.get('success') is not False
        message = payload.get('message')
    else:
        success = status_code is None or status_code < 400
        message = None

    return {
        'user': user_id,
        'userEmail': user_email,
        'action': action,
        'resource': resource,
        'method': method,
        'url': url,
        'ip': ip,
        'userAgent': user_agent,
        'timestamp': timestamp.isoformat(),
        'success': success,
        'message': message,
        'resourceId': resource_id,
    }


def log_request(record: Dict[str, Any]) -> None:
    """
    Emit a request audit record.

    Args:
        record: Output of build_request_record
    """
    log_message = (
        f"{record['user'] or 'anonymous'} | {record['action']} {record['resource']} | "
        f"{record['method']} {record['url']} | {'OK' if record['success'] else 'FAILED'}"
    )

    if record['success']:
        audit_logger.debug(log_message)
    else:
        audit_logger.warning(log_message)

    audit_logger.info(f"AUDIT: {json.dumps(record, default=str)}")


def log_permission_check(
    user: str,
    permission: str,
    granted: bool,
    endpoint: Optional[str],
    role: Optional[str],
    code: Optional[str] = None,
) -> None:
    """
    Log an authorization decision.

    Args:
        user: User id (or 'anonymous')
        permission: What was checked (e.g. 'orders:update', 'role(admin,manager)')
        granted: Whether access was granted
        endpoint: Flask endpoint name
        role: User's role
        code: Denial code, when denied
    """
    result = 'GRANTED' if granted else 'DENIED'
    log_message = f"{user} | {permission} | {result} | {endpoint} | role: {role}"
    if code:
        log_message += f" | {code}"

    if granted:
        audit_logger.debug(log_message)
    else:
        audit_logger.warning(log_message)


def log_authentication_event(
    user: str,
    event_type: str,
    success: bool,
    details: Optional[str] = None,
) -> None:
    """
    Log an authentication event.

    Args:
        user: User id (or 'unknown')
        event_type: Type of event ('token', 'api_key', 'token_issued')
        success: Whether the event succeeded
        details: Failure code or other context
    """
    result = 'SUCCESS' if success else 'FAILURE'
    log_message = f"AUTH | {event_type} | {user} | {result}"
    if details:
        log_message += f" | {details}"

    if success:
        audit_logger.debug(log_message)
    else:
        audit_logger.warning(log_message)
