"""Scene operations: add, edit, delete and trim.

Operations transform inputs into outputs and never touch storage; the
dispatcher loads what they need and persists what they return.
"""

from .add import AddScene
from .delete import DeleteScene
from .edit import EditScene
from .trim import TrimScene

__all__ = ["AddScene", "DeleteScene", "EditScene", "TrimScene"]
