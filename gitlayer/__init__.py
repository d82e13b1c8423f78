"""gitlayer - an async git process orchestration and caching layer."""

__version__ = "0.1.0"
