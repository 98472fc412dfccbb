from logfire_pg.session.state import AuthenticatedSession, Credential

__all__ = ["AuthenticatedSession", "Credential"]
