"""Database bootstrapping utilities."""

from __future__ import annotations

import logging

from cloudvault.packages.storage.db import session as db_session
from cloudvault.packages.storage.models.base import Base
from cloudvault.packages.storage.models.bucket import Bucket  # noqa: F401 - ensure table registration
from cloudvault.packages.storage.models.item import StorageItem  # noqa: F401 - ensure table registration

logger = logging.getLogger(__name__)


def init_db() -> None:
    """Create the ``buckets`` and ``items`` tables if they do not exist."""
    Base.metadata.create_all(bind=db_session.engine)
    logger.info("Metadata index ready at %s", db_session.engine.url.render_as_string(hide_password=True))
