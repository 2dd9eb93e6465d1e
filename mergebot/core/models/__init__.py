from .patch       import Patch
from .repository  import Repository
from .invocation  import Invocation
from .run_state   import RunState
from .enums       import Stage, LogKind

__all__ = [
    "Patch",
    "Repository",
    "Invocation",
    "RunState",
    "Stage",
    "LogKind",
]
