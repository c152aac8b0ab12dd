"""Processor registry for lookup by name."""

from typing import Dict, List, Optional, Type

from batch.processors.base import RecordProcessor


class ProcessorRegistry:
    """Registry for record processors, looked up by name."""

    def __init__(self):
        self._processors: Dict[str, Type[RecordProcessor]] = {}

    def register(self, processor_cls: Type[RecordProcessor]) -> Type[RecordProcessor]:
        """Register a processor class (replaces existing with same name).

        Returns the class so it can be used as a decorator.
        """
        if not processor_cls.name:
            raise ValueError(f"{processor_cls.__name__} has no name")
        self._processors[processor_cls.name] = processor_cls
        return processor_cls

    def unregister(self, name: str) -> None:
        """Remove a processor by name. No-op if not found."""
        self._processors.pop(name, None)

    def get(self, name: str) -> Optional[Type[RecordProcessor]]:
        return self._processors.get(name)

    @property
    def names(self) -> List[str]:
        """Sorted list of registered processor names."""
        return sorted(self._processors)

    def __len__(self) -> int:
        return len(self._processors)

    def __contains__(self, name: str) -> bool:
        return name in self._processors


registry = ProcessorRegistry()
