import asyncio
from datetime import datetime, timezone

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from postcrawl.utils.seeds import (
    clear_directory,
    download_seed_file,
    generate_crawl_id,
    parse_seed_lines,
    read_seeds_from_file,
)


def test_crawl_id_is_fourteen_digit_utc_timestamp():
    assert generate_crawl_id(datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)) == "20240102030405"

    crawl_id = generate_crawl_id()
    assert len(crawl_id) == 14
    assert crawl_id.isdigit()


def test_parse_seed_lines_skips_blanks_and_comments():
    text = "durov\n\n  # news channels\ntelegram  \n#tginfo\n"

    assert parse_seed_lines(text) == ["durov", "telegram"]


def test_read_seeds_from_file(tmp_path):
    path = tmp_path / "seeds.txt"
    path.write_text("durov\ntelegram\n", encoding="utf-8")

    assert read_seeds_from_file(path) == ["durov", "telegram"]


def serve_seeds(tmp_path, route, scenario):
    async def handler(request):
        return route(request)

    async def main():
        app = web.Application()
        app.router.add_get("/{name}", handler)
        async with TestServer(app) as server:
            return await scenario(server)

    return asyncio.run(main())


def test_download_seed_file(tmp_path):
    async def scenario(server):
        return await download_seed_file(str(server.make_url("/seeds.txt")), tmp_path / "dl")

    path = serve_seeds(tmp_path, lambda r: web.Response(text="durov\n# x\ntelegram\n"), scenario)

    assert path.parent == tmp_path / "dl"
    assert read_seeds_from_file(path) == ["durov", "telegram"]


def test_download_seed_file_non_200_fails(tmp_path):
    async def scenario(server):
        with pytest.raises(aiohttp.ClientResponseError):
            await download_seed_file(str(server.make_url("/seeds.txt")), tmp_path)

    serve_seeds(tmp_path, lambda r: web.Response(status=404), scenario)


def test_download_seed_file_requires_http_url():
    with pytest.raises(ValueError):
        asyncio.run(download_seed_file("ftp://example.com/seeds.txt"))


def test_clear_directory(tmp_path):
    target = tmp_path / "downloads"
    (target / "nested").mkdir(parents=True)
    (target / "nested" / "a.bin").write_bytes(b"a")
    (target / "b.bin").write_bytes(b"b")

    assert clear_directory(target) == 2
    assert target.is_dir()
    assert list(target.iterdir()) == []


def test_clear_directory_missing_is_noop(tmp_path):
    assert clear_directory(tmp_path / "nope") == 0


def test_clear_directory_rejects_file(tmp_path):
    path = tmp_path / "file.txt"
    path.write_text("x")

    with pytest.raises(NotADirectoryError):
        clear_directory(path)
