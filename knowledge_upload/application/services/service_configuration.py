"""Service configuration for dependency injection"""

import logging
from typing import Optional

from shared.config.settings import Settings, get_settings

from ...domain.repositories.storage_backend import StorageBackend
from ...domain.services.chunk_planner import ChunkPlanner
from ...domain.services.file_validator import FileValidator
from ...infrastructure.external.http_storage_backend import HttpBackendConfig, HttpStorageBackend
from .batch_sessions import BatchSessionStore
from .dependency_injection import DIContainer
from .event_dispatcher import EventDispatcher

logger = logging.getLogger(__name__)


class UploadServiceConfiguration:
    """Registers the upload engine services"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def __call__(self, container: DIContainer) -> DIContainer:
        return self.configure_services(container)

    def configure_services(self, container: DIContainer) -> DIContainer:
        container.register_singleton(Settings, instance=self.settings)

        # Infrastructure
        container.register_singleton(StorageBackend, factory=self._create_backend)

        # Domain services
        container.register_singleton(FileValidator, factory=self._create_validator)
        container.register_singleton(ChunkPlanner, factory=self._create_chunk_planner)

        # Application services
        container.register_singleton(EventDispatcher, implementation=EventDispatcher)
        container.register_singleton(BatchSessionStore, factory=self._create_session_store)

        logger.info("Upload services configured")
        return container

    def _create_backend(self, container: DIContainer) -> StorageBackend:
        settings = self.settings
        return HttpStorageBackend(
            HttpBackendConfig(
                base_url=settings.backend_url,
                api_token=settings.backend_api_token,
                timeout=settings.backend_timeout_seconds,
                transfer_timeout=settings.backend_transfer_timeout_seconds,
                stream_slice_bytes=settings.backend_stream_slice_bytes,
                max_attempts=settings.request_max_attempts,
                retry_max_delay=settings.request_retry_max_delay_seconds
            )
        )

    def _create_validator(self, container: DIContainer) -> FileValidator:
        return FileValidator(self.settings.max_pdf_size_bytes, self.settings.max_other_size_bytes)

    def _create_chunk_planner(self, container: DIContainer) -> ChunkPlanner:
        return ChunkPlanner(self.settings.chunking_threshold_bytes, self.settings.chunk_size_bytes)

    async def _create_session_store(self, container: DIContainer) -> BatchSessionStore:
        return BatchSessionStore(
            backend=await container.resolve(StorageBackend),
            settings=self.settings,
            dispatcher=await container.resolve(EventDispatcher),
            validator=await container.resolve(FileValidator),
            chunk_planner=await container.resolve(ChunkPlanner)
        )
