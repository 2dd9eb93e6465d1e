from dataclasses import dataclass

@dataclass(frozen=True, slots=True)
class Repository:
    scm: str
    url: str
