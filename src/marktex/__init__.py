"""MarkTeX workspace core: virtual file system, snapshot persistence and outlines."""

__version__ = "0.1.0"
