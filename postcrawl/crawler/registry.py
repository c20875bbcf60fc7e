from postcrawl.crawler.base import BasePlatformClient

_registry: dict[str, type[BasePlatformClient]] = {}


def register_client(name: str, client_class: type[BasePlatformClient]) -> None:
    _registry[name] = client_class


def get_client(name: str) -> type[BasePlatformClient] | None:
    return _registry.get(name)


def registered_clients() -> list[str]:
    return sorted(_registry)
