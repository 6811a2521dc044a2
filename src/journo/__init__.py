"""journo - bullet journal entry store with a synchronized search index."""

__version__ = "0.1.0"
