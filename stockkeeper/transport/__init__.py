from stockkeeper.transport.base import BaseTransport, TransportError
from stockkeeper.transport.http import HttpTransport
from stockkeeper.transport.memory import MemoryTransport

__all__ = ["BaseTransport", "TransportError", "HttpTransport", "MemoryTransport"]
