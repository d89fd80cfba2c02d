from pickpool import db  # noqa: F401 - imported for model imports

from .participant import Participant
from .pick_document import PickDocument, PickStore
from .week_recap import WeekRecap

__all__ = [
    "Participant",
    "PickDocument",
    "PickStore",
    "WeekRecap",
]
