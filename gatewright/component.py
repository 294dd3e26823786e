from abc import ABC, abstractmethod
from typing import Any, ClassVar

from gatewright.naming import short_hash


class Component[ResourcesT](ABC):
    _name: str
    _resources: ResourcesT | None

    def __init__(self, name: str):
        self._name = name
        self._resources = None
        ComponentRegistry.add_instance(self)

    @property
    def name(self) -> str:
        return self._name

    @property
    def resources(self) -> ResourcesT:
        if not self._resources:
            self._resources = self._create_resources()
        return self._resources

    @abstractmethod
    def _create_resources(self) -> ResourcesT:
        """Create the Pulumi resources of this component"""
        raise NotImplementedError


class ComponentRegistry:
    _registered_names: ClassVar[set[str]] = set()

    @classmethod
    def add_instance(cls, instance: Component[Any]) -> None:
        if instance.name in cls._registered_names:
            raise ValueError(
                f"Duplicate component name detected: '{instance.name}'. "
                "Component names must be unique within one program."
            )
        cls._registered_names.add(instance.name)


def safe_name(
    prefix: str, name: str, max_length: int, suffix: str = "", pulumi_suffix_length: int = 8
) -> str:
    """Join prefix, name and suffix into a resource name that fits max_length.

    Room is left for the random suffix Pulumi appends to physical names. Names that do
    not fit are cut and end in a 7 character hash of the full name, so two long names
    sharing a prefix still differ.

    Example: safe_name("gatewright-example-com-", "method-GET-users", 128)
    """
    if not name.strip():
        raise ValueError("Name cannot be empty or whitespace-only")

    available = max_length - len(prefix) - len(suffix) - pulumi_suffix_length
    if len(name) <= available:
        return f"{prefix}{name}{suffix}"

    # 7 hash characters plus the separating dash
    hash_length = 8
    if available <= hash_length:
        raise ValueError(
            f"Cannot fit name into {max_length} characters: prefix '{prefix}' and "
            f"suffix '{suffix}' leave {available} character(s)"
        )
    return f"{prefix}{name[: available - hash_length]}-{short_hash(name)}{suffix}"
