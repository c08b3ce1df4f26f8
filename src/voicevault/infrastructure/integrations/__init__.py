"""External service integrations."""

from voicevault.infrastructure.integrations.metadata_lookup import HttpMetadataLookup

__all__ = ["HttpMetadataLookup"]
