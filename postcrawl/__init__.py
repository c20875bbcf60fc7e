"""postcrawl - resumable, layered channel crawler producing normalized posts."""

__version__ = "0.1.0"
