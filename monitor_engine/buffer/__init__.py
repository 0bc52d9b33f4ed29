"""Buffer circular de historial."""

from .ring_buffer import DEFAULT_CAPACITY, RingBuffer

__all__ = ["DEFAULT_CAPACITY", "RingBuffer"]
