# voiceturn - Utils Package
from .ring_buffer import RingBuffer
from .text_utils import chunk_text

__all__ = [
    "RingBuffer",
    "chunk_text",
]
