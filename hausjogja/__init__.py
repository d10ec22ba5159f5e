"""HausJogja backend: auth, product catalog and ordering API."""

__version__ = "1.0.0"
