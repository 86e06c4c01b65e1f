"""Persistence: async SQLite connection, migrations, and the repository.

Re-exports:
    from Put_Scout.data import Database, Repository
"""

from Put_Scout.data.database import Database
from Put_Scout.data.repository import Repository

__all__ = ["Database", "Repository"]
