# Importing every model registers its table on Base.metadata
from notekeeper.models.user import User
from notekeeper.models.note import Note
from notekeeper.models.note_cache import NoteCacheEntry

__all__ = ["User", "Note", "NoteCacheEntry"]
