"""Session orchestration between the bot platform and the live-chat service."""

from chatbridge.bridge.availability import AvailabilityProbe, AvailabilityResult
from chatbridge.bridge.history import HistoryReconciler
from chatbridge.bridge.messages import MessageBridge, MessageTable
from chatbridge.bridge.router import EventRouter, PublicEvents
from chatbridge.bridge.session import SessionController
from chatbridge.bridge.survey import SurveyManager

__all__ = [
    "AvailabilityProbe",
    "AvailabilityResult",
    "EventRouter",
    "HistoryReconciler",
    "MessageBridge",
    "MessageTable",
    "PublicEvents",
    "SessionController",
    "SurveyManager",
]
