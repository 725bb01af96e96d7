"""Cascade manager: locate, download, decode, cache, and evict cascade files.

Cascade files live in a local directory. When a file is missing and a
HuggingFace repo is configured, it is downloaded from there. Decoded
cascades are cached and evicted after an idle TTL.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from huggingface_hub import hf_hub_download

from cascadex.ml.cascade import parse_cascade_text

if TYPE_CHECKING:
    from cascadex.config import Settings
    from cascadex.ml.cascade import Cascade

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol (what the API layer depends on)
# ---------------------------------------------------------------------------


class CascadeManager(Protocol):
    """Cascade lifecycle as seen by the routes and the app lifespan."""

    def get_cascade(self, name: str) -> Cascade:
        """Return a cached or newly decoded cascade."""
        ...

    def is_available(self, name: str) -> bool:
        """Whether the cascade file exists locally or can be fetched."""
        ...

    def get_loaded_cascades(self) -> list[str]:
        """Return names of currently decoded cascades."""
        ...

    def unload_idle_cascades(self) -> None:
        """Drop cascades that have exceeded their TTL."""
        ...

    def shutdown(self) -> None:
        """Clear all cached cascades."""
        ...


# ---------------------------------------------------------------------------
# Cascade registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CascadeSpec:
    """Static metadata for a single cascade file."""

    name: str
    filename: str


CASCADE_REGISTRY: dict[str, CascadeSpec] = {
    "frontalface_default": CascadeSpec(
        name="frontalface_default",
        filename="haarcascade_frontalface_default.js",
    ),
}


# ---------------------------------------------------------------------------
# Concrete implementation
# ---------------------------------------------------------------------------


@dataclass
class _CachedCascade:
    cascade: Cascade
    last_used: float


class FileCascadeManager:
    """Loads cascades from disk (or the Hub), decodes and caches them."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._cascades_dir = Path(settings.cascades_dir)

        self._lock = threading.Lock()
        self._cascades: dict[str, _CachedCascade] = {}
        self._paths: dict[str, Path] = {}

    # -- Public API ---------------------------------------------------------

    def ensure_available(self, name: str) -> Path:
        """Return the local cascade file, downloading it if a repo is configured.

        Raises:
            KeyError: If the cascade name is not registered.
            FileNotFoundError: If the file is absent and cannot be downloaded.
        """
        spec = self._get_spec(name)

        with self._lock:
            cached = self._paths.get(name)
            if cached is not None and cached.exists():
                return cached

            local = self._cascades_dir / spec.filename
            if local.exists():
                self._paths[name] = local
                return local

        repo_id = self._settings.cascade_repo_id
        if repo_id is None:
            raise FileNotFoundError(f"Cascade file {local} not found and CASCADEX_CASCADE_REPO_ID is not set")

        # Download outside the lock.
        self._cascades_dir.mkdir(parents=True, exist_ok=True)
        downloaded = Path(
            hf_hub_download(
                repo_id=repo_id,
                filename=spec.filename,
                local_dir=str(self._cascades_dir),
            )
        )
        with self._lock:
            self._paths[name] = downloaded
        logger.info("Downloaded %s to %s", name, downloaded)
        return downloaded

    def get_cascade(self, name: str) -> Cascade:
        """Return a cached cascade, decoding it if needed."""
        with self._lock:
            cached = self._cascades.get(name)
            if cached is not None:
                cached.last_used = time.monotonic()
                return cached.cascade

        path = self.ensure_available(name)
        cascade = parse_cascade_text(path.read_text(encoding="utf-8"))

        with self._lock:
            # Another thread may have decoded it while we were reading.
            existing = self._cascades.get(name)
            if existing is not None:
                existing.last_used = time.monotonic()
                return existing.cascade
            self._cascades[name] = _CachedCascade(cascade=cascade, last_used=time.monotonic())
            logger.info(
                "Loaded cascade %s (%dx%d, %d stages, %d classifiers)",
                name,
                cascade.base_width,
                cascade.base_height,
                len(cascade.stages),
                cascade.classifier_count,
            )
            return cascade

    def is_available(self, name: str) -> bool:
        """Whether the file is present locally or can be fetched from the configured repo."""
        spec = self._get_spec(name)
        return (self._cascades_dir / spec.filename).exists() or self._settings.cascade_repo_id is not None

    def get_loaded_cascades(self) -> list[str]:
        with self._lock:
            return list(self._cascades.keys())

    def unload_idle_cascades(self) -> None:
        """Remove cascades that have exceeded the configured TTL."""
        ttl = self._settings.cascade_ttl
        if ttl == 0:
            return

        now = time.monotonic()
        with self._lock:
            expired = [name for name, cached in self._cascades.items() if (now - cached.last_used) > ttl]
            for name in expired:
                del self._cascades[name]
                logger.info("Evicted idle cascade %s", name)

    def shutdown(self) -> None:
        with self._lock:
            self._cascades.clear()
            logger.info("All cascades cleared")

    # -- Internal -----------------------------------------------------------

    @staticmethod
    def _get_spec(name: str) -> CascadeSpec:
        try:
            return CASCADE_REGISTRY[name]
        except KeyError:
            raise KeyError(f"Unknown cascade: {name}") from None
