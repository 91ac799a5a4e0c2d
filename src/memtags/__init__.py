"""memtags - client for the memory server's tag hierarchy."""

__version__ = "0.1.0"
