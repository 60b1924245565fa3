"""oakreindex - reindex Oak index definitions changed by a content package."""

__version__ = "0.3.0"
