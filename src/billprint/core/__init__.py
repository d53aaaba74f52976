"""Core framework components for billprint."""

from .state import JobState, JobStateMachine
from .events import EventBus, Event, EventType

__all__ = ["JobState", "JobStateMachine", "EventBus", "Event", "EventType"]
