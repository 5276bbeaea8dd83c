"""
Dependency injection container using dependency-injector.
Wires the storage backends, the contact store, services and controllers.
"""

from typing import Any, Dict, Optional

from dependency_injector import containers, providers

from promobase.backends.document import DocumentBackend
from promobase.backends.relational import RelationalBackend
from promobase.controllers.admin_controller import AdminController
from promobase.controllers.contact_controller import ContactController
from promobase.controllers.duplicate_controller import DuplicateController
from promobase.controllers.health_controller import HealthController
from promobase.core.config import settings
from promobase.services.contact_store import ContactStore
from promobase.services.health_service import HealthService
from promobase.services.import_service import ImportService
from promobase.services.merge_ledger import MergeLedger
from promobase.services.merge_service import MergeService


class Container(containers.DeclarativeContainer):
    """Dependency injection container."""

    # Configuration
    config = providers.Configuration()

    # Storage backends; the store picks one on first use
    relational_backend = providers.Singleton(
        RelationalBackend,
        database_url=config.database_url,
        enabled=config.relational_backend_enabled,
    )

    document_backend = providers.Singleton(
        DocumentBackend,
        path=config.document_store_path,
    )

    # Created and torn down together with the store
    merge_ledger = providers.Singleton(
        MergeLedger,
    )

    contact_store = providers.Singleton(
        ContactStore,
        relational=relational_backend,
        document=document_backend,
        ledger=merge_ledger,
        bulk_chunk_size=config.bulk_chunk_size,
    )

    # Services
    health_service = providers.Singleton(
        HealthService,
        store=contact_store,
    )

    merge_service = providers.Singleton(
        MergeService,
        store=contact_store,
    )

    import_service = providers.Singleton(
        ImportService,
        store=contact_store,
        chunk_size=config.import_chunk_size,
    )

    # Controllers
    health_controller = providers.Factory(
        HealthController,
        health_service=health_service,
    )

    contact_controller = providers.Factory(
        ContactController,
        store=contact_store,
    )

    duplicate_controller = providers.Factory(
        DuplicateController,
        merge_service=merge_service,
    )

    admin_controller = providers.Factory(
        AdminController,
        store=contact_store,
        import_service=import_service,
    )


def settings_config() -> Dict[str, Any]:
    """Container configuration taken from application settings."""
    return {
        "database_url": settings.DATABASE_URL,
        "relational_backend_enabled": settings.RELATIONAL_BACKEND_ENABLED,
        "document_store_path": settings.DOCUMENT_STORE_PATH,
        "bulk_chunk_size": settings.BULK_CHUNK_SIZE,
        "import_chunk_size": settings.IMPORT_CHUNK_SIZE,
    }


def build_container(overrides: Optional[Dict[str, Any]] = None) -> Container:
    """Create a configured container; ``overrides`` replace individual settings."""
    container = Container()
    container.config.from_dict({**settings_config(), **(overrides or {})})
    return container


# Global container instance
_container: Container = None


def get_container() -> Container:
    """Get the global dependency injection container."""
    global _container
    if _container is None:
        _container = build_container()
    return _container


def set_container(container: Optional[Container]) -> None:
    """Replace the global container (application startup and tests)."""
    global _container
    _container = container
