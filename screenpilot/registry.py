"""
Registry - maps an enum/name to a factory so providers, operators and
agent variants can be swapped (and mocked in tests) without string switches.
"""

from enum import Enum
from typing import Any, Callable, Dict, Generic, List, TypeVar, Union

T = TypeVar("T")

Key = Union[str, Enum]


def _normalize(key: Key) -> str:
    return key.value if isinstance(key, Enum) else str(key)


class Registry(Generic[T]):
    """Named factories for one kind of component."""

    def __init__(self, kind: str):
        self.kind = kind
        self._factories: Dict[str, Callable[..., T]] = {}

    def register(self, key: Key, factory: Callable[..., T], replace: bool = False) -> None:
        name = _normalize(key)
        if not name:
            raise ValueError("name must be non-empty")
        if name in self._factories and not replace:
            raise ValueError(f"{self.kind} already registered: {name}")
        self._factories[name] = factory

    def unregister(self, key: Key) -> None:
        self._factories.pop(_normalize(key), None)

    def create(self, key: Key, **kwargs: Any) -> T:
        name = _normalize(key)
        try:
            factory = self._factories[name]
        except KeyError as exc:
            raise KeyError(f"unknown {self.kind}: {name}") from exc
        return factory(**kwargs)

    def names(self) -> List[str]:
        return sorted(self._factories)

    def __contains__(self, key: Key) -> bool:
        return _normalize(key) in self._factories
