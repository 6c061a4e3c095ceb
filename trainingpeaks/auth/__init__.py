"""
Authentication Module
=====================
Browser-driven sign-in and session handling for the TrainingPeaks client.

Architecture:
    - ``WebLoginFlow``       — Playwright login state machine
    - ``SelectorResolver``   — ordered selector fallback chains
    - ``NetworkInterceptor`` — recovers token + user id from page traffic
    - ``synthesize_session`` — capture buffer → immutable ``Session``
    - ``SessionStore``       — get/set/clear interface (memory, file)
    - ``TokenRefresher``     — refresh-token exchange

Usage::

    from trainingpeaks.auth import WebLoginFlow, InMemorySessionStore
    from trainingpeaks.models import Credentials

    store = InMemorySessionStore()
    session = await WebLoginFlow(config).login(Credentials("athlete", "secret"))
    store.set(session)
"""

from .interceptor import NetworkInterceptor
from .login_flow import LoginStage, WebLoginFlow
from .refresh import TokenRefresher
from .selectors import ResolvedSelector, SelectorCandidate, SelectorResolver
from .session_store import FileSessionStore, InMemorySessionStore, SessionStore
from .synthesizer import synthesize_session

__all__ = [
    "WebLoginFlow",
    "LoginStage",
    "SelectorResolver",
    "SelectorCandidate",
    "ResolvedSelector",
    "NetworkInterceptor",
    "synthesize_session",
    "SessionStore",
    "InMemorySessionStore",
    "FileSessionStore",
    "TokenRefresher",
]
