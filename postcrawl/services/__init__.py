from postcrawl.services.frontier_store import SqlFrontierStore

__all__ = ["SqlFrontierStore"]
