"""Last-write-wins sets, replicated cluster events, error responses and configuration for a publish/subscribe broker."""

__version__ = "0.1.0"