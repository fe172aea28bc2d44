"""Operations exposed to the HTTP layer."""

from stellar_stream.api.streams import StreamAPI

__all__ = ["StreamAPI"]
