from postcrawl.utils.retry import RetryConfig, RetryResult, retry_async, retry_with_result
from postcrawl.utils.seeds import (
    clear_directory,
    download_seed_file,
    generate_crawl_id,
    parse_seed_lines,
    read_seeds_from_file,
)

__all__ = [
    "RetryConfig",
    "RetryResult",
    "clear_directory",
    "download_seed_file",
    "generate_crawl_id",
    "parse_seed_lines",
    "read_seeds_from_file",
    "retry_async",
    "retry_with_result",
]
