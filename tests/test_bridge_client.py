import asyncio
from pathlib import Path

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from conftest import CRAWL_ID, make_message
from postcrawl.crawler.base import ChannelContext, ChannelStats
from postcrawl.crawler.bridge import BridgeClient
from postcrawl.crawler.bridge.client import RETRYABLE_ERRORS
from postcrawl.crawler.errors import (
    AuthError,
    ContentNotFoundError,
    PlatformError,
    RateLimitError,
    RemoteFileError,
)
from postcrawl.crawler.extractor import ContentExtractor
from postcrawl.crawler.registry import get_client
from postcrawl.utils.retry import RetryConfig

TOKEN = "secret-token"


def build_app(state):
    async def me(request):
        if request.headers.get("Authorization") != f"Bearer {TOKEN}":
            return web.json_response({"error": "unauthorized"}, status=401)
        return web.json_response({"id": 1, "username": "crawler_bot"})

    async def channel(request):
        name = request.match_info["identifier"]
        if name == "missing":
            return web.json_response({"error": "not found"}, status=404)
        return web.json_response(
            {
                "chat": {"chat_id": 555, "username": name, "title": "Durov's Channel"},
                "stats": {"member_count": 1000, "post_count": 50},
            }
        )

    async def messages(request):
        state["message_queries"].append(dict(request.query))
        return web.json_response(
            {
                "messages": [
                    {"id": 2, "chat_id": 555, "date": 1700000000, "content": {"kind": "text", "text": "hi"}},
                    {"id": "not-a-number", "chat_id": 555},
                    {"id": 1, "chat_id": 555, "date": 1690000000, "content": {"kind": "sticker"}},
                ]
            }
        )

    async def link(request):
        if "link_body" in state:
            return web.json_response(state["link_body"])
        return web.json_response({"link": f"https://t.me/durov/{request.match_info['message_id']}"})

    async def comments(request):
        if "comments_body" in state:
            return web.json_response(state["comments_body"])
        return web.json_response({"comments": [{"author": "alice", "text": "nice"}, {"author": ["bad"]}]})

    async def views(request):
        if "views_body" in state:
            return web.json_response(state["views_body"])
        return web.json_response({"view_count": 123})

    async def shares(request):
        state["share_calls"] += 1
        if "shares_body" in state:
            return web.json_response(state["shares_body"])
        if state["share_calls"] == 1:
            return web.json_response({"error": "slow down"}, status=429, headers={"Retry-After": "0"})
        return web.json_response({"share_count": 9})

    async def flaky(request):
        state["flaky_calls"] += 1
        return web.json_response({"error": "boom"}, status=503)

    async def remote_file(request):
        if request.match_info["remote_id"] == "broken":
            return web.json_response({"size": 1})
        return web.json_response({"id": 77, "size": 5})

    async def file_content(request):
        return web.Response(
            body=b"hello",
            headers={"Content-Disposition": 'attachment; filename="photo.jpg"'},
        )

    app = web.Application()
    app.router.add_get("/me", me)
    app.router.add_get("/channels/{identifier}", channel)
    app.router.add_get("/chats/{chat_id}/messages", messages)
    app.router.add_get("/chats/{chat_id}/messages/{message_id}/link", link)
    app.router.add_get("/chats/{chat_id}/messages/{message_id}/comments", comments)
    app.router.add_get("/chats/{chat_id}/messages/{message_id}/views", views)
    app.router.add_get("/chats/{chat_id}/messages/{message_id}/shares", shares)
    app.router.add_get("/chats/{chat_id}/flaky", flaky)
    app.router.add_get("/files/remote/{remote_id}", remote_file)
    app.router.add_get("/files/{file_id}/content", file_content)
    return app


def with_bridge(tmp_path, scenario, token=TOKEN, **bodies):
    """Run ``scenario(client, state)`` against a local bridge server.

    Keyword arguments such as ``shares_body`` override the JSON an endpoint answers with.
    """
    state = {"message_queries": [], "share_calls": 0, "flaky_calls": 0, **bodies}

    async def main():
        async with TestServer(build_app(state)) as server:
            client = BridgeClient(
                base_url=str(server.make_url("")),
                api_token=token,
                download_dir=str(tmp_path / "downloads"),
                retry_config=RetryConfig(max_retries=2, delay=0.0, exceptions=RETRYABLE_ERRORS),
                request_timeout=5.0,
            )
            try:
                await client.connect()
                return await scenario(client, state)
            finally:
                await client.disconnect()

    return asyncio.run(main())


def test_bridge_is_registered():
    assert get_client("bridge") is BridgeClient


def test_resolve_channel(tmp_path):
    async def scenario(client, state):
        return await client.resolve_channel("durov")

    context, stats = with_bridge(tmp_path, scenario)

    assert context.chat_id == 555
    assert context.title == "Durov's Channel"
    assert stats.member_count == 1000


def test_fetch_messages_skips_unparseable_entries(tmp_path):
    async def scenario(client, state):
        messages = await client.fetch_messages(555, from_message_id=10, limit=50)
        return messages, state["message_queries"]

    messages, queries = with_bridge(tmp_path, scenario)

    assert [m.id for m in messages] == [2, 1]
    assert messages[0].content_type == "text"
    assert messages[1].content_type == "sticker"
    assert queries == [{"from_message_id": "10", "limit": "50"}]


def test_message_details(tmp_path):
    async def scenario(client, state):
        return (
            await client.fetch_message_link(555, 42),
            await client.fetch_comments(555, 42),
            await client.fetch_view_count(555, 42),
        )

    link, comments, views = with_bridge(tmp_path, scenario)

    assert link == "https://t.me/durov/42"
    assert [c.author for c in comments] == ["alice"]
    assert views == 123


def test_rate_limit_is_retried(tmp_path):
    async def scenario(client, state):
        return await client.fetch_share_count(555, 42), state["share_calls"]

    shares, calls = with_bridge(tmp_path, scenario)

    assert shares == 9
    assert calls == 2


def test_server_errors_are_retried_then_raised(tmp_path):
    async def scenario(client, state):
        with pytest.raises(PlatformError):
            await client._get("/chats/555/flaky")
        return state["flaky_calls"]

    assert with_bridge(tmp_path, scenario) == 3


def test_not_found_maps_to_content_not_found(tmp_path):
    async def scenario(client, state):
        with pytest.raises(ContentNotFoundError):
            await client.resolve_channel("missing")

    with_bridge(tmp_path, scenario)


def test_bad_token_fails_connect(tmp_path):
    async def scenario(client, state):
        pass

    with pytest.raises(AuthError):
        with_bridge(tmp_path, scenario, token="wrong")


def test_download_streams_into_download_dir(tmp_path):
    async def scenario(client, state):
        remote = await client.fetch_remote_file("AgAD-photo")
        return remote, await client.download_file(remote.id)

    remote, path = with_bridge(tmp_path, scenario)

    assert remote.id == 77
    assert remote.remote_id == "AgAD-photo"
    assert Path(path) == tmp_path / "downloads" / "77.jpg"
    assert Path(path).read_bytes() == b"hello"


def test_malformed_remote_file_response(tmp_path):
    async def scenario(client, state):
        with pytest.raises(RemoteFileError):
            await client.fetch_remote_file("broken")

    with_bridge(tmp_path, scenario)


def test_calls_before_connect_fail(tmp_path):
    client = BridgeClient(base_url="http://localhost:1", api_token="", download_dir=str(tmp_path))

    with pytest.raises(PlatformError):
        asyncio.run(client.get_me())


def test_rate_limit_error_carries_retry_after():
    assert RateLimitError(retry_after=30).retry_after == 30
    assert RetryConfig(max_delay=10).get_delay(0, RateLimitError(retry_after=30)) == 10


@pytest.mark.parametrize("body", [{"share_count": None}, {"share_count": "many"}, {}, ["not", "a", "dict"]])
def test_malformed_count_raises_platform_error(tmp_path, body):
    async def scenario(client, state):
        with pytest.raises(PlatformError):
            await client.fetch_share_count(555, 42)

    with_bridge(tmp_path, scenario, shares_body=body)


@pytest.mark.parametrize("body", [["link"], {"link": 42}])
def test_malformed_link_raises_platform_error(tmp_path, body):
    async def scenario(client, state):
        with pytest.raises(PlatformError):
            await client.fetch_message_link(555, 42)

    with_bridge(tmp_path, scenario, link_body=body)


def test_malformed_comments_raise_platform_error(tmp_path):
    async def scenario(client, state):
        with pytest.raises(PlatformError):
            await client.fetch_comments(555, 42)

    with_bridge(tmp_path, scenario, comments_body="nope")


def test_extractor_degrades_bad_counts_to_zero(tmp_path, sink, store, settings):
    context = ChannelContext(chat_id=555, username="durov", title="Durov's Channel")
    message = make_message(42, chat_id=555)

    async def scenario(client, state):
        extractor = ContentExtractor(client, sink, store, settings)
        return await extractor.extract(CRAWL_ID, message, context, ChannelStats())

    post = with_bridge(
        tmp_path,
        scenario,
        shares_body={"share_count": None},
        views_body={"view_count": "lots"},
        comments_body=[],
    )

    assert post.post_uid == "42-durov"
    assert post.share_count == 0
    assert post.view_count == 0
    assert post.comment_count == 0
    assert [uid for _, uid in store.records] == ["42-durov"]
