"""Storage Service - Persistent storage for runs and finished presentations."""

import json
from collections import OrderedDict
from datetime import datetime
from pathlib import Path
from typing import Optional
import logging

from studydeck.config import get_settings
from studydeck.services.asset_service import AssetCache, AssetPrefetcher

logger = logging.getLogger(__name__)


class StorageService:
    """Handles storage for runs, presentations and per-run asset caches.

    Runs and presentations are written as JSON files; asset caches only live
    in memory and belong to exactly one run.
    """

    def __init__(self, storage_dir: str | Path | None = None, max_cached_runs: int | None = None):
        """Initialize storage service.

        Args:
            storage_dir: Directory for storing data. Defaults to settings.storage_path
            max_cached_runs: Asset caches kept in memory. Defaults to settings.max_cached_runs
        """
        settings = get_settings()
        if storage_dir is None:
            storage_dir = settings.storage_path
        self.max_cached_runs = max_cached_runs or settings.max_cached_runs

        self.storage_dir = Path(storage_dir)
        self.runs_dir = self.storage_dir / "runs"
        self.presentations_dir = self.storage_dir / "presentations"

        # Ensure directories exist
        self.runs_dir.mkdir(parents=True, exist_ok=True)
        self.presentations_dir.mkdir(parents=True, exist_ok=True)

        # In-memory cache
        self._runs_cache: dict[str, dict] = {}
        self._presentations_cache: dict[str, dict] = {}
        self._asset_caches: OrderedDict[str, AssetCache] = OrderedDict()
        self._prefetchers: dict[str, AssetPrefetcher] = {}

        # Load existing data
        self._load_all()

    def _load_all(self):
        """Load all existing data from storage."""
        for file_path in self.runs_dir.glob("*.json"):
            try:
                with open(file_path, "r", encoding="utf-8") as f:
                    self._runs_cache[file_path.stem] = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.error(f"Failed to load run {file_path}: {e}")

        for file_path in self.presentations_dir.glob("*.json"):
            try:
                with open(file_path, "r", encoding="utf-8") as f:
                    self._presentations_cache[file_path.stem] = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.error(f"Failed to load presentation {file_path}: {e}")

        logger.info(
            f"Loaded {len(self._runs_cache)} runs and {len(self._presentations_cache)} presentations from storage"
        )

    def _datetime_handler(self, obj):
        """JSON serializer for datetime objects."""
        if isinstance(obj, datetime):
            return obj.isoformat()
        raise TypeError(f"Object of type {type(obj)} is not JSON serializable")

    def _write(self, file_path: Path, data: dict) -> bool:
        try:
            with open(file_path, "w", encoding="utf-8") as f:
                json.dump(data, f, default=self._datetime_handler, ensure_ascii=False, indent=2)
            return True
        except (OSError, TypeError) as e:
            logger.error(f"Failed to write {file_path}: {e}")
            return False

    def _unlink(self, file_path: Path) -> None:
        try:
            file_path.unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Failed to delete {file_path}: {e}")

    # === Run Operations ===

    def save_run(self, run_id: str, run_data: dict) -> bool:
        """Save a run to storage."""
        self._runs_cache[run_id] = run_data
        return self._write(self.runs_dir / f"{run_id}.json", run_data)

    def get_run(self, run_id: str) -> Optional[dict]:
        """Get a run from storage."""
        return self._runs_cache.get(run_id)

    def delete_run(self, run_id: str) -> None:
        """Delete a run from storage."""
        self._unlink(self.runs_dir / f"{run_id}.json")
        self._runs_cache.pop(run_id, None)

    def list_runs(self, limit: int = 20, offset: int = 0) -> tuple[list[dict], int]:
        """List all runs with pagination."""
        runs = list(self._runs_cache.values())
        # Sort by created_at descending
        runs.sort(key=lambda x: str(x.get("created_at", "")), reverse=True)
        total = len(runs)
        return runs[offset:offset + limit], total

    # === Presentation Operations ===

    def save_presentation(self, presentation_id: str, presentation: dict) -> bool:
        """Save a finished presentation to storage."""
        self._presentations_cache[presentation_id] = presentation
        return self._write(self.presentations_dir / f"{presentation_id}.json", presentation)

    def get_presentation(self, presentation_id: str) -> Optional[dict]:
        """Get a presentation from storage."""
        return self._presentations_cache.get(presentation_id)

    def delete_presentation(self, presentation_id: str) -> None:
        """Delete a presentation from storage."""
        self._unlink(self.presentations_dir / f"{presentation_id}.json")
        self._presentations_cache.pop(presentation_id, None)

    def list_presentations(self, limit: int = 20, offset: int = 0) -> tuple[list[dict], int]:
        """List all presentations with pagination."""
        items = [
            {
                "presentation_id": presentation_id,
                "main_title": data.get("main_title", "Untitled"),
                "slide_count": len(data.get("slides", [])),
                "degraded": data.get("degraded", False),
                "created_at": data.get("created_at"),
            }
            for presentation_id, data in self._presentations_cache.items()
        ]
        # Sort by title
        items.sort(key=lambda x: x.get("main_title", ""))
        total = len(items)
        return items[offset:offset + limit], total

    # === Asset Operations ===

    def get_asset_cache(self, run_id: str) -> AssetCache:
        """Get the asset cache of a run, creating an empty one on first use.

        Only the ``max_cached_runs`` most recently used caches are kept;
        caches of runs that are still prefetching are never evicted.
        """
        cache = self._asset_caches.get(run_id)
        if cache is None:
            cache = self._asset_caches[run_id] = AssetCache()
        self._asset_caches.move_to_end(run_id)
        self._evict_asset_caches()
        return cache

    def _evict_asset_caches(self) -> None:
        excess = len(self._asset_caches) - self.max_cached_runs
        if excess <= 0:
            return
        # The most recently used cache is the one being handed out
        for run_id in list(self._asset_caches)[:-1]:
            if excess <= 0:
                break
            if run_id in self._prefetchers:
                continue
            self._asset_caches.pop(run_id).clear()
            excess -= 1
            logger.info(f"Evicted asset cache of run {run_id}")

    def set_prefetcher(self, run_id: str, prefetcher: AssetPrefetcher) -> None:
        self._prefetchers[run_id] = prefetcher

    def get_prefetcher(self, run_id: str) -> Optional[AssetPrefetcher]:
        return self._prefetchers.get(run_id)

    def remove_prefetcher(self, run_id: str, prefetcher: AssetPrefetcher) -> None:
        """Forget a finished prefetcher unless a newer one replaced it."""
        if self._prefetchers.get(run_id) is prefetcher:
            del self._prefetchers[run_id]

    def drop_assets(self, run_id: str) -> Optional[AssetPrefetcher]:
        """Forget the cached assets of a run.

        Returns the run's prefetcher, if any, so the caller can close it.
        """
        cache = self._asset_caches.pop(run_id, None)
        if cache is not None:
            cache.clear()
        return self._prefetchers.pop(run_id, None)


# Singleton instance
_storage_service: Optional[StorageService] = None


def get_storage_service() -> StorageService:
    """Get the storage service singleton."""
    global _storage_service
    if _storage_service is None:
        _storage_service = StorageService()
    return _storage_service
