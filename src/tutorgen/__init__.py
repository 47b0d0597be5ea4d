"""Turn a source repository into a chaptered, cross-linked markdown tutorial."""

__version__ = "0.1.0"
