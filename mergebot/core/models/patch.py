from dataclasses import dataclass

@dataclass(frozen=True, slots=True)
class Patch:
    author:  str
    subject: str
    data:    bytes

    def __str__(self) -> str:
        return f"{self.subject} ({self.author}, {len(self.data)} bytes)"
