"""Database sessions for worker tasks.

Commits made by the worker publish change events the same way the API's
do, so dashboards following a user see sends and failures as they happen.
"""

from typing import Optional

from sqlalchemy.orm import Session, sessionmaker

from coldai_core.infra import db
from coldai_core.infrastructure.realtime import get_change_publisher, install_change_hooks

_hooked_factory: Optional[sessionmaker[Session]] = None


def get_session_factory() -> sessionmaker[Session]:
    """Get the shared session factory with change hooks installed once."""
    global _hooked_factory
    session_factory = db.get_sync_session_factory()
    if session_factory is not _hooked_factory:
        install_change_hooks(session_factory, get_change_publisher())
        _hooked_factory = session_factory
    return session_factory
