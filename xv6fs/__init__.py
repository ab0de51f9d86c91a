"""A small Unix-style file system in memory: image builder, buffer cache, redo log, inodes, directories and tools."""

__version__ = "0.1.0"