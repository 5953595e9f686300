from mingleo.session.session_context import SessionContext, SessionState

__all__ = ["SessionContext", "SessionState"]
