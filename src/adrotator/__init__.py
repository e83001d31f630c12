"""adrotator - weighted ad rotation runtime and AdSource service."""

__version__ = "0.1.0"
