from dataclasses import dataclass
from typing import Sequence


@dataclass(frozen=True)
class Credential:
    index: int
    key: str


class ApiKeyPool:
    """Round-robin rotation over the configured API keys."""

    def __init__(self, keys: Sequence[str]):
        keys = [key for key in keys if key]
        if not keys:
            raise ValueError("At least one API key is required")
        self._keys = keys
        self._position = 0

    def next_credential(self) -> Credential:
        index = self._position
        self._position = (self._position + 1) % len(self._keys)
        return Credential(index=index, key=self._keys[index])
