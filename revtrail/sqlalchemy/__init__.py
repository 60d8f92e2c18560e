'''SQLAlchemy revision tracking extension.

For general information see the root revtrail package docstring.

Implementation Notes
====================

Revisions are driven by mapper level flush events (before_insert,
after_insert, etc) rather than session events: the before_* events may still
change column attributes of the row being written (which is how the object's
revision number gets saved along with it) and the after_* events get the
connection of the running flush, so Revision rows can be written with plain
Core inserts inside the same transaction.

Upserts are not seen by flush events at all (they are single INSERT ... ON
CONFLICT statements) so RevisionTracker.upsert runs both phases itself.

Per call options (no_revision, user_id, revision_metadata) live on the
session's or instance's info dictionary, see RevisionSession.
'''
from .changeset import Revision, RevisionChange, RevisionPersister
from .model import Revisioner
from .sqla import JsonType, RevisionSession, SQLAlchemyMixin
from .tools import RevisionTracker
