"""Theme Engine - Semantic theme extraction and clustering for research corpora."""

__version__ = "0.1.0"
