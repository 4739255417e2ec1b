"""SearchStream: real-time search-as-you-type gateway."""

__version__ = "0.1.0"
