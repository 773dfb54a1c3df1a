from .signature_service import (
    SignatureCollectionService,
    StatusErrorListener,
    StatusListener,
    StatusSubscription,
)
from .rendering_service import DocumentRenderingService
from .service_factory import ServiceKind, ServiceRegistry
from .manual_signature_service import ManualSignatureService
from .local_rendering_service import LocalRenderingService
from .tablet_signature_service import TabletSignatureService
from .http_rendering_service import HttpRenderingService

# Register built-in services
ServiceRegistry.register(ServiceKind.SIGNATURE, "manual", ManualSignatureService)
ServiceRegistry.register(ServiceKind.SIGNATURE, "tablet", TabletSignatureService)
ServiceRegistry.register(ServiceKind.RENDERING, "local", LocalRenderingService)
ServiceRegistry.register(ServiceKind.RENDERING, "http", HttpRenderingService)

__all__ = [
    "SignatureCollectionService",
    "StatusErrorListener",
    "StatusListener",
    "StatusSubscription",
    "DocumentRenderingService",
    "ServiceKind",
    "ServiceRegistry",
    "ManualSignatureService",
    "LocalRenderingService",
    "TabletSignatureService",
    "HttpRenderingService",
]
