from typing import Any, Dict, Iterable, Protocol


class SettingsRepository(Protocol):
    def get_values(self, keys: Iterable[str]) -> Dict[str, Any]:
        """Decoded values for the keys present in the store."""
        ...

    def set_values(self, values: Dict[str, Any]) -> None:
        ...
