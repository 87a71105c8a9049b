"""Registry for interchangeable implementations."""

from typing import Callable, Generic, TypeVar

from .exceptions import RegistryError, RepeatedIdError

T = TypeVar("T", bound=Callable)


class Registry(Generic[T]):
    """Maintains a registry of related callables, indexed by a string key."""

    def __init__(self, name: str):
        self._name = name
        self._records: dict[str, T] = dict()

    def get(self, id_: str) -> T:
        """Retrieve an entry from the registry."""
        if id_ not in self._records:
            raise RegistryError(f"Entry {id_} not found in {self._name} registry.")
        return self._records[id_]

    def list(self) -> list[str]:
        """List all registered keys."""
        return list(self._records)

    def register(self, id_: str | None = None) -> Callable[[T], T]:
        """Add an entry to the registry.

        Use as a decorator. If `id_` is not provided, the entry ``__name__`` is used as key.

        """

        def decorator(entry: T) -> T:
            key = entry.__name__ if id_ is None else id_
            if key in self._records:
                raise RepeatedIdError(key)
            self._records[key] = entry
            return entry

        return decorator


detector_registry: Registry = Registry("peak detector")
