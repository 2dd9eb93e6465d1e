from enum import Enum, auto

class Stage(Enum):
    INIT                 = auto()
    FETCH_PATCH          = auto()
    RESOLVE_REPOSITORY   = auto()
    CHECKOUT             = auto()
    FINGERPRINT_PRE      = auto()
    APPLY_PATCH          = auto()
    COMMIT               = auto()
    FINGERPRINT_POST     = auto()
    RELEASE_CHANGELOG    = auto()
    BUILD                = auto()
    DONE                 = auto()

class LogKind(Enum):
    INVOCATION   = "invocation"
    STDOUTSTDERR = "stdoutstderr"
