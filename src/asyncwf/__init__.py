"""AsyncWF: asynchronous agent job dispatch."""

__version__ = "1.1.0"

__all__ = ["__version__"]
