"""Client session control: transport events in, invocation notices out."""

from .session_controller import SessionController, SessionState, category_tag

__all__ = ["SessionController", "SessionState", "category_tag"]
