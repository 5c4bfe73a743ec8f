"""Metadata store backends for PicShare."""

from typing import TYPE_CHECKING

from picshare.metadata.models import Account, Credential, MediaRecord, Page
from picshare.metadata.store import MetadataStore

if TYPE_CHECKING:
    from picshare.config import MetadataConfig

__all__ = [
    "Account",
    "create_metadata_store",
    "Credential",
    "MediaRecord",
    "MetadataStore",
    "Page",
]


def create_metadata_store(config: "MetadataConfig") -> MetadataStore:
    """Create a metadata store instance based on configuration.

    Args:
        config: The metadata configuration.

    Returns:
        A metadata store instance implementing the MetadataStore protocol.

    Raises:
        ValueError: If the engine is unknown.
    """
    engine = config.engine

    if engine == "sqlite":
        from picshare.metadata.sqlite import SQLiteMetadataStore

        return SQLiteMetadataStore(config.sqlite_path)

    elif engine == "memory":
        from picshare.metadata.memory import MemoryMetadataStore

        return MemoryMetadataStore()

    else:
        raise ValueError(f"Unknown metadata engine: {engine}")
