"""Business logic services."""

from studydeck.services.llm_service import LLMService, get_llm_service
from studydeck.services.generation_service import GenerationService, get_generation_service
from studydeck.services.asset_service import AssetCache, AssetPrefetcher, create_asset_prefetcher
from studydeck.services.storage_service import StorageService, get_storage_service

__all__ = [
    "LLMService",
    "get_llm_service",
    "GenerationService",
    "get_generation_service",
    "AssetCache",
    "AssetPrefetcher",
    "create_asset_prefetcher",
    "StorageService",
    "get_storage_service",
]
