from postcrawl.crawler.bridge.client import BridgeClient
from postcrawl.crawler.registry import register_client

register_client(BridgeClient.platform, BridgeClient)

__all__ = ["BridgeClient"]
