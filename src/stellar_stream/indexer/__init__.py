"""Contract event indexer."""

from stellar_stream.indexer.indexer import EventIndexer

__all__ = ["EventIndexer"]
