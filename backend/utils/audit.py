"""
Structured audit logging for link, reconciliation and report operations.

Every event is written as one JSON document to the dedicated 'audit' logger.
Request-scoped context (request id, actor, client address, user agent) is
carried in ContextVars so services can emit events without threading the
HTTP request through every call.

Audit is fire-and-forget: ``log_event`` never raises and never changes the
outcome reported to the caller.
"""

import json
import logging
from contextvars import ContextVar
from typing import Any, Dict, Optional

from utils.timestamps import utcnow

logger = logging.getLogger(__name__)

_request_id_context: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
_actor_context: ContextVar[Optional[str]] = ContextVar('actor', default=None)
_ip_address_context: ContextVar[Optional[str]] = ContextVar('ip_address', default=None)
_user_agent_context: ContextVar[Optional[str]] = ContextVar('user_agent', default=None)

DEFAULT_ACTOR = "system"


class AuditLogger:
    """
    Structured audit logger.

    Mirrors the collaborator contract
    ``logEvent(action, subjectType, subjectId, payload?, actor?, ipAddress?, userAgent?)``.
    """

    def __init__(self):
        self.logger = logging.getLogger('audit')

    # ── Request context ──────────────────────────────────────────────

    def set_request_id(self, request_id: str) -> None:
        _request_id_context.set(request_id)

    def get_request_id(self) -> Optional[str]:
        return _request_id_context.get()

    def set_client(
        self,
        actor: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        """Record who is calling for the rest of this request context."""
        _actor_context.set(actor)
        _ip_address_context.set(ip_address)
        _user_agent_context.set(user_agent)

    # ── Core ─────────────────────────────────────────────────────────

    def log_event(
        self,
        action: str,
        subject_type: str,
        subject_id: str,
        payload: Optional[Dict[str, Any]] = None,
        actor: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        """
        Emit a structured audit event.

        Args:
            action: What happened (e.g. 'link_device_sim', 'report_generated')
            subject_type: Kind of entity affected ('device', 'report', ...)
            subject_id: Identifier of the affected entity
            payload: Effective parameters of the operation
            actor: Who performed it; defaults to the request actor or 'system'
            ip_address: Client address; defaults to the request context
            user_agent: Client user agent; defaults to the request context
        """
        try:
            event = {
                'timestamp': utcnow().isoformat() + 'Z',
                'action': action,
                'subject_type': subject_type,
                'subject_id': str(subject_id),
                'actor': actor or _actor_context.get() or DEFAULT_ACTOR,
                'ip_address': ip_address or _ip_address_context.get(),
                'user_agent': user_agent or _user_agent_context.get(),
                'request_id': self.get_request_id(),
                'payload': payload or {},
            }
            self.logger.info(json.dumps(event, default=str))
        except Exception:
            logger.exception(f"Failed to emit audit event {action} for {subject_type}:{subject_id}")

    # ── Convenience wrappers ─────────────────────────────────────────

    def log_reconciliation(
        self,
        run_id: str,
        is_success: bool,
        devices_processed: int,
        sims_processed: int,
        error_count: int,
        force_refresh: bool,
    ) -> None:
        self.log_event(
            action='reconciliation_run',
            subject_type='reconciliation',
            subject_id=run_id,
            payload={
                'status': 'success' if is_success else 'failure',
                'devices_processed': devices_processed,
                'sims_processed': sims_processed,
                'error_count': error_count,
                'force_refresh': force_refresh,
            },
        )

    def log_report(
        self,
        report_id: str,
        report_type: str,
        row_count: int,
        file_size_bytes: int,
        error_message: Optional[str] = None,
    ) -> None:
        payload = {
            'type': report_type,
            'row_count': row_count,
            'file_size_bytes': file_size_bytes,
        }
        if error_message:
            payload['error_message'] = error_message
        self.log_event(
            action='report_failed' if error_message else 'report_generated',
            subject_type='report',
            subject_id=report_id,
            payload=payload,
        )

    def log_asset_change(self, operation: str, asset_id: str, changes: Optional[Dict[str, Any]] = None) -> None:
        self.log_event(
            action=f'asset_{operation}',
            subject_type='asset',
            subject_id=asset_id,
            payload=changes,
        )


# Global audit logger instance for convenient import
audit = AuditLogger()
