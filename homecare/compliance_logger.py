from datetime import datetime, timezone
from typing import Optional, Any, Callable, Dict
import logging
from sqlalchemy.exc import SQLAlchemyError
from homecare.database import SessionLocal
from homecare import models


class ComplianceLogger:
	"""Stores scheduling and calendar events in the AuditLog table."""

	_STANDARD_ACTIONS = {a.value for a in models.AuditAction}

	def __init__(self, session_factory: Callable = SessionLocal):
		self.session_factory = session_factory
		self.logger = logging.getLogger(__name__)

	@classmethod
	def normalize_action(cls, action: Optional[str]) -> models.AuditAction:
		"""Reduce a free-form action name to one of the AuditAction values."""
		action_upper = (action or '').upper()
		if action_upper in cls._STANDARD_ACTIONS:
			return models.AuditAction(action_upper)
		if 'DENIED' in action_upper:
			return models.AuditAction.ACCESS_DENIED
		if 'SYNC' in action_upper or 'GENERATE' in action_upper or 'BULK' in action_upper:
			return models.AuditAction.BULK_ACTION
		if action_upper.endswith('_CREATE') or action_upper.startswith('CREATE'):
			return models.AuditAction.CREATE
		if action_upper.endswith('_DELETE') or action_upper.startswith('DELETE'):
			return models.AuditAction.DELETE
		if action_upper.endswith('_UPDATE') or action_upper.startswith('UPDATE') or 'SCHEDULE' in action_upper:
			return models.AuditAction.UPDATE
		if 'EXPORT' in action_upper:
			return models.AuditAction.EXPORT
		return models.AuditAction.READ

	def log_event(
		self,
		user_id: Optional[int],
		action: str,
		category: str,
		details: Optional[str] = None,
		severity: str = 'INFO',
		resource_type: Optional[str] = None,
		resource_id: Optional[int] = None,
		username: Optional[str] = None,
		old_values: Optional[Dict[str, Any]] = None,
		new_values: Optional[Dict[str, Any]] = None,
		**_: Any
	) -> None:
		"""Writes one audit row in its own session so the caller's transaction is untouched."""
		db = self.session_factory()
		try:
			db_log = models.AuditLog(
				user_id=user_id,
				username=username if username else (str(user_id) if user_id else 'System'),
				action=self.normalize_action(action),
				category=category or 'GENERAL',
				severity=severity or 'INFO',
				resource_type=resource_type,
				resource_id=resource_id,
				details=details,
				old_values=old_values,
				new_values=new_values,
				timestamp=datetime.now(timezone.utc),
			)
			db.add(db_log)
			db.commit()
		except SQLAlchemyError as e:
			db.rollback()
			self.logger.error(f"Failed to save compliance log to DB: {e}")
		finally:
			db.close()


# Shared instance; tests swap `session_factory`
compliance_logger = ComplianceLogger()
