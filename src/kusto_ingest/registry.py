"""
Shared client bundles keyed by backend configuration.

Every coordinator targeting the same cluster with the same credentials shares
one token provider, one resource cache and one HTTP session. Bundles are
reference counted and closed when the last holder releases them.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Dict, Optional

from config.config import IngestConfig
from core.auth.base import BaseTokenProvider
from core.auth.factory import create_token_provider
from kusto_ingest.query import KustoQueryClient
from kusto_ingest.resources import ResourceCache
from kusto_ingest.uploader import BatchUploader

logger = logging.getLogger(__name__)


@dataclass
class ClientBundle:
    """Clients for one backend configuration."""

    key: str
    token_provider: BaseTokenProvider
    query_client: KustoQueryClient
    resource_cache: ResourceCache
    uploader: BatchUploader
    ref_count: int = 0

    def close(self) -> None:
        """Close in reverse dependency order; keep going past failures."""
        for name, closeable in (
            ("uploader", self.uploader),
            ("query_client", self.query_client),
            ("token_provider", self.token_provider),
        ):
            try:
                closeable.close()
            except Exception as e:
                logger.warning(
                    "Error closing %s: %s",
                    name,
                    str(e)[:100],
                    extra={"error_type": type(e).__name__},
                )


def build_bundle(
    config: IngestConfig,
    provider_factory: Callable[[IngestConfig], BaseTokenProvider] = create_token_provider,
) -> ClientBundle:
    token_provider = provider_factory(config)
    query_client = KustoQueryClient(config.endpoint, token_provider)
    resource_cache = ResourceCache(query_client)
    return ClientBundle(
        key=config.fingerprint(),
        token_provider=token_provider,
        query_client=query_client,
        resource_cache=resource_cache,
        uploader=BatchUploader(resource_cache),
    )


class ClientRegistry:
    """
    Double-checked-locked registry of ClientBundle by config fingerprint.

    Example:
        bundle = registry.acquire(config)
        try:
            bundle.uploader.upload(...)
        finally:
            registry.release(bundle)
    """

    def __init__(
        self,
        bundle_factory: Callable[[IngestConfig], ClientBundle] = build_bundle,
    ):
        self._bundle_factory = bundle_factory
        self._bundles: Dict[str, ClientBundle] = {}
        self._lock = threading.Lock()

    def acquire(self, config: IngestConfig) -> ClientBundle:
        """Get (or create) the bundle for config and take a reference."""
        key = config.fingerprint()
        bundle = self._bundles.get(key)
        if bundle is None:
            with self._lock:
                bundle = self._bundles.get(key)
                if bundle is None:
                    bundle = self._bundle_factory(config)
                    self._bundles[key] = bundle
                    logger.info(
                        "Created client bundle",
                        extra={"auth_type": config.auth_type, "url": config.endpoint},
                    )
        with self._lock:
            # Released to zero between lookup and increment
            if self._bundles.get(key) is not bundle:
                self._bundles[key] = bundle = self._bundle_factory(config)
            bundle.ref_count += 1
        return bundle

    def release(self, bundle: ClientBundle) -> None:
        """Drop a reference; the last release closes the bundle."""
        with self._lock:
            if self._bundles.get(bundle.key) is not bundle or bundle.ref_count <= 0:
                return
            bundle.ref_count -= 1
            if bundle.ref_count > 0:
                return
            del self._bundles[bundle.key]
        logger.info("Closing client bundle")
        bundle.close()

    def get(self, config: IngestConfig) -> Optional[ClientBundle]:
        return self._bundles.get(config.fingerprint())

    def __len__(self) -> int:
        return len(self._bundles)

    def close_all(self) -> None:
        with self._lock:
            bundles = list(self._bundles.values())
            self._bundles.clear()
        for bundle in bundles:
            bundle.ref_count = 0
            bundle.close()


_registry: Optional[ClientRegistry] = None
_registry_lock = threading.Lock()


def get_registry() -> ClientRegistry:
    """Process-wide default registry."""
    global _registry
    if _registry is None:
        with _registry_lock:
            if _registry is None:
                _registry = ClientRegistry()
    return _registry


def reset_registry() -> None:
    """Close all bundles and drop the default registry (tests)."""
    global _registry
    with _registry_lock:
        registry, _registry = _registry, None
    if registry is not None:
        registry.close_all()


__all__ = [
    "ClientBundle",
    "ClientRegistry",
    "build_bundle",
    "get_registry",
    "reset_registry",
]
