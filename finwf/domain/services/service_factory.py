from enum import Enum
from typing import Any

from .signature_service import SignatureCollectionService
from .rendering_service import DocumentRenderingService


class ServiceKind(str, Enum):
    """The step family a service implementation performs."""

    SIGNATURE = "signature"
    RENDERING = "rendering"


_BASES: dict[ServiceKind, type] = {
    ServiceKind.SIGNATURE: SignatureCollectionService,
    ServiceKind.RENDERING: DocumentRenderingService,
}


class ServiceRegistry:
    """Registered signature and rendering service implementations.

    Keys are unique per kind, so `manual` can name a signature service and a
    rendering service at the same time.
    """

    _registry: dict[ServiceKind, dict[str, type]] = {kind: {} for kind in ServiceKind}

    @classmethod
    def register(cls, kind: ServiceKind, key: str, service_class: type) -> None:
        """
        Register a service implementation under a kind.

        Raises:
            TypeError: If service_class does not implement the kind's interface
        """
        kind = ServiceKind(kind)
        base = _BASES[kind]
        if not (isinstance(service_class, type) and issubclass(service_class, base)):
            raise TypeError(f"{service_class!r} is not a {base.__name__}")
        cls._registry[kind][key] = service_class

    @classmethod
    def create(cls, kind: ServiceKind, key: str, config: dict[str, Any] | None = None) -> Any:
        """
        Instantiate a registered service with `config` as constructor kwargs.

        Raises:
            KeyError: If key is not registered for that kind
        """
        kind = ServiceKind(kind)
        services = cls._registry[kind]
        if key not in services:
            available = ", ".join(services) or "none"
            raise KeyError(
                f"{kind.value.capitalize()} service '{key}' not found. "
                f"Available services: {available}"
            )
        return services[key](**(config or {}))

    @classmethod
    def keys(cls, kind: ServiceKind | None = None) -> list[str]:
        return [key for _, key, _ in cls._entries(kind)]

    @classmethod
    def describe(cls, key: str | None = None) -> list[tuple[ServiceKind, dict[str, Any]]]:
        """Metadata for every registered service, or only those named `key`.

        Returned in kind order (signature first), then registration order.
        """
        return [
            (kind, service_class.get_metadata())
            for kind, name, service_class in cls._entries()
            if key is None or name == key
        ]

    @classmethod
    def _entries(cls, kind: ServiceKind | None = None) -> list[tuple[ServiceKind, str, type]]:
        kinds = list(ServiceKind) if kind is None else [ServiceKind(kind)]
        return [(k, name, service_class) for k in kinds for name, service_class in cls._registry[k].items()]
