"""Persistence — append-only audit log and state replay source."""

from merkledrop.persistence.event_log import EventKind, EventLog, EventRecord

__all__ = ["EventKind", "EventLog", "EventRecord"]
