"""Approval workflow domain events and a synchronous emitter.

Events are immutable and carry metadata for tracing. Handlers registered
on the emitter are isolated: a failing handler is logged and does not
stop the others, nor the transition that produced the event.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar
from uuid import UUID, uuid4

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: UUID
    timestamp: datetime
    correlation_id: UUID  # Links events of one pay run
    actor_id: UUID | None
    actor_type: str  # 'user', 'system'
    source_service: str
    version: int = 1

    @classmethod
    def create(
        cls,
        correlation_id: UUID | None = None,
        actor_id: UUID | None = None,
        actor_type: str = "user",
        source_service: str = "approvals",
    ) -> EventMetadata:
        return cls(
            event_id=uuid4(),
            timestamp=datetime.now(timezone.utc),
            correlation_id=correlation_id or uuid4(),
            actor_id=actor_id,
            actor_type=actor_type,
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for approval events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> dict[str, Any]:
        data = _serialize(asdict(self))
        data["event_type"] = self.event_type
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


def _serialize(obj: Any) -> Any:
    """Recursively convert values for JSON compatibility."""
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_serialize(v) for v in obj]
    elif isinstance(obj, UUID):
        return str(obj)
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, Decimal):
        return str(obj)
    elif isinstance(obj, Enum):
        return obj.value
    return obj


@dataclass(frozen=True)
class ApprovalChainStarted(DomainEvent):
    """A pay run was submitted and its approval chain created."""

    pay_run_id: UUID
    chain_id: UUID
    levels: int


@dataclass(frozen=True)
class ApprovalStepApproved(DomainEvent):
    pay_run_id: UUID
    step_id: UUID
    level: int
    approved_by: UUID


@dataclass(frozen=True)
class ApprovalStepRejected(DomainEvent):
    """A step was rejected; the chain is halted."""

    pay_run_id: UUID
    step_id: UUID
    level: int
    rejected_by: UUID
    comments: str | None


@dataclass(frozen=True)
class ApprovalStepDelegated(DomainEvent):
    pay_run_id: UUID
    step_id: UUID
    level: int
    from_approver_id: UUID
    to_approver_id: UUID


@dataclass(frozen=True)
class ApprovalStepOverridden(DomainEvent):
    """A step was force-approved by an administrator."""

    pay_run_id: UUID
    step_id: UUID
    level: int
    overridden_by: UUID
    reason: str


@dataclass(frozen=True)
class PayRunApprovalCompleted(DomainEvent):
    """Every step of the pay run's chain is approved."""

    pay_run_id: UUID
    chain_id: UUID


T = TypeVar("T", bound=DomainEvent)
EventHandler = Callable[[DomainEvent], None]


class EventEmitter:
    """Synchronous event emitter.

    Usage:
        emitter = EventEmitter()
        emitter.on(ApprovalStepRejected, notify_payroll_admin)
        emitter.on_all(audit_log.append)
        emitter.emit(event)
    """

    def __init__(self) -> None:
        self._handlers: list[tuple[set[str] | None, EventHandler]] = []

    def on(self, event_type: type[T] | list[type[T]], handler: EventHandler) -> None:
        """Register handler for specific event type(s)."""
        if isinstance(event_type, list):
            types = {t.__name__ for t in event_type}
        else:
            types = {event_type.__name__}
        self._handlers.append((types, handler))

    def on_all(self, handler: EventHandler) -> None:
        self._handlers.append((None, handler))

    def off(self, handler: EventHandler) -> None:
        self._handlers = [(t, h) for t, h in self._handlers if h is not handler]

    def emit(self, event: DomainEvent) -> list[Exception]:
        """Emit an event to all matching handlers.

        Returns the exceptions raised by handlers.
        """
        errors: list[Exception] = []
        for types, handler in self._handlers:
            if types is not None and event.event_type not in types:
                continue
            try:
                handler(event)
            except Exception as e:
                logger.exception("Handler %s failed for event %s", handler, event.event_type)
                errors.append(e)
        return errors
