"""iRacing Setup Sync - keep a local setups folder mirrored from a datapack service."""

__version__ = "0.1.0"
