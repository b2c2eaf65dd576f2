"""
Service layer: short code codec, id allocation and the URLService facade.
"""

from .short_code import Base62Codec, encode, decode
from .id_allocator import IdAllocator, IdGenerator
from .url_service import URLService

__all__ = [
    "Base62Codec",
    "encode",
    "decode",
    "IdAllocator",
    "IdGenerator",
    "URLService",
]
