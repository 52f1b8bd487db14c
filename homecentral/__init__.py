"""Hawaii Home Central backend."""

__version__ = "0.1.0"
