"""Tests for identifier resolution."""

import asyncio

import pytest

from taskhue.cache import CacheManager
from taskhue.exceptions import ChannelError, DecodeError
from taskhue.identifiers import (
    ForeignEventResolver,
    IdentifierResolver,
    Pending,
    Resolved,
    await_task_id,
    b64_decode_text,
    decode_indirect_id,
    lookup_with_base64_fallback,
    strip_direct_prefix,
)
from taskhue.models import DIALOG_ROLE, ItemNode
from taskhue.store import StoreArea
from tests.conftest import CountingStore, FakeChannel, b64, make_item

EVENT_MAPPING = "calendarEventMapping"


def _resolvers(
    store: CountingStore | None = None, channel: FakeChannel | None = None
) -> tuple[IdentifierResolver, CacheManager]:
    cache = CacheManager(store or CountingStore())
    return IdentifierResolver(ForeignEventResolver(cache, channel, timeout=1.0)), cache


class TestDecodeIndirectId:
    """Tests for decode_indirect_id."""

    def test_decodes_event_id(self) -> None:
        assert decode_indirect_id("ttb_" + b64("evt123 user@example.com")) == "evt123"

    def test_without_owner(self) -> None:
        assert decode_indirect_id("ttb_" + b64("evt123")) == "evt123"

    def test_tolerates_missing_padding(self) -> None:
        encoded = b64("evt12 user@example.com").rstrip("=")
        assert decode_indirect_id("ttb_" + encoded) == "evt12"

    @pytest.mark.parametrize("raw", [None, "", "tasks.abc", "ttb_", "ttb_!!!not-base64!!!"])
    def test_malformed_returns_none(self, raw: str | None) -> None:
        """Malformed input is reported as no identifier, never raised."""
        assert decode_indirect_id(raw) is None

    def test_b64_decode_text_raises_decode_error(self) -> None:
        with pytest.raises(DecodeError):
            b64_decode_text("!!!")


class TestBase64Fallback:
    """Tests for lookup_with_base64_fallback."""

    def test_direct_hit(self) -> None:
        assert lookup_with_base64_fallback({"abc": "red"}, "abc") == "red"

    def test_encoded_key_finds_decoded_entry(self) -> None:
        assert lookup_with_base64_fallback({"K8gRiZkif": "red"}, b64("K8gRiZkif")) == "red"

    def test_decoded_key_finds_encoded_entry(self) -> None:
        assert lookup_with_base64_fallback({b64("K8gRiZkif"): "red"}, "K8gRiZkif") == "red"

    def test_miss(self) -> None:
        assert lookup_with_base64_fallback({"abc": "red"}, "xyz") is None
        assert lookup_with_base64_fallback({}, "abc") is None
        assert lookup_with_base64_fallback(None, "abc") is None


class TestTaskRef:
    """Tests for the Resolved/Pending union."""

    def test_strip_direct_prefix(self) -> None:
        assert strip_direct_prefix("tasks.abc") == "abc"
        assert strip_direct_prefix("tasks_abc") == "abc"
        assert strip_direct_prefix("ttb_abc") is None
        assert strip_direct_prefix("tasks.") is None

    def test_await_resolved_and_pending(self) -> None:
        async def lookup() -> str:
            return "later"

        async def run() -> tuple[str | None, str | None, str | None]:
            return (
                await await_task_id(Resolved("now")),
                await await_task_id(Pending(lookup())),
                await await_task_id(None),
            )

        assert asyncio.run(run()) == ("now", "later", None)


class TestIdentifierResolver:
    """Tests for IdentifierResolver."""

    def test_direct_scheme_resolves_immediately(self) -> None:
        resolver, _ = _resolvers()
        assert resolver.resolve_task_id(make_item("tasks.abc")) == Resolved("abc")
        assert resolver.resolve_task_id(make_item("tasks_def")) == Resolved("def")

    def test_explicit_task_id_attribute(self) -> None:
        resolver, _ = _resolvers()
        assert resolver.resolve_task_id(make_item(task_id="xyz")) == Resolved("xyz")

    def test_walks_ancestors(self) -> None:
        resolver, _ = _resolvers()
        outer = make_item("tasks.abc")
        inner = make_item(parent=make_item(parent=outer))
        assert resolver.resolve_task_id(inner) == Resolved("abc")

    def test_stops_at_root_boundary(self) -> None:
        resolver, _ = _resolvers()
        root = ItemNode(attributes={"data-eventid": "tasks.abc"}, is_root=True)
        assert resolver.resolve_task_id(make_item(parent=root)) is None

    def test_dialog_items_are_never_resolved(self) -> None:
        resolver, _ = _resolvers()
        dialog = make_item(role=DIALOG_ROLE)
        assert resolver.resolve_task_id(make_item("tasks.abc", parent=dialog)) is None

    def test_indirect_scheme_uses_event_mapping(self) -> None:
        store = CountingStore(
            {StoreArea.LOCAL: {EVENT_MAPPING: {"evt123": {"taskFragment": "frag1"}}}}
        )
        channel = FakeChannel()
        resolver, _ = _resolvers(store, channel)
        item = make_item("ttb_" + b64("evt123 user@example.com"))

        ref = resolver.resolve_task_id(item)
        assert isinstance(ref, Pending)
        assert asyncio.run(await_task_id(ref)) == "frag1"
        assert channel.sent == []

    def test_indirect_scheme_asks_remote_on_miss(self) -> None:
        channel = FakeChannel(
            {"RESOLVE_CALENDAR_EVENT": {"success": True, "taskFragment": "frag9"}}
        )
        resolver, cache = _resolvers(channel=channel)
        item = make_item("ttb_" + b64("evt9 user@example.com"))

        async def run() -> tuple[str | None, str | None]:
            first = await resolver.resolve_item(item)
            return first, await cache.lookup_event("evt9")

        assert asyncio.run(run()) == ("frag9", "frag9")
        assert channel.sent == [{"type": "RESOLVE_CALENDAR_EVENT", "calendarEventId": "evt9"}]

    @pytest.mark.parametrize(
        "reply",
        [
            None,
            {"success": False, "error": "not found"},
            {"success": True},
            ChannelError("disconnected"),
            RuntimeError("boom"),
        ],
    )
    def test_remote_failures_resolve_to_none(self, reply: object) -> None:
        """No reply, an error reply and a channel failure all read as no task."""
        resolver, _ = _resolvers(channel=FakeChannel({"RESOLVE_CALENDAR_EVENT": reply}))
        item = make_item("ttb_" + b64("evt9 user@example.com"))
        assert asyncio.run(resolver.resolve_item(item)) is None

    def test_remote_timeout_resolves_to_none(self) -> None:
        async def slow(message: dict) -> dict:
            await asyncio.sleep(1)
            return {"success": True, "taskFragment": "late"}

        class SlowChannel:
            async def send(self, message: dict) -> dict:
                return await slow(message)

        cache = CacheManager(CountingStore())
        resolver = IdentifierResolver(ForeignEventResolver(cache, SlowChannel(), timeout=0.01))
        item = make_item("ttb_" + b64("evt9 user@example.com"))
        assert asyncio.run(resolver.resolve_item(item)) is None

    def test_malformed_indirect_id_falls_back_to_task_id_attribute(self) -> None:
        resolver, _ = _resolvers()
        item = make_item("ttb_!!!", task_id="explicit")
        assert resolver.resolve_task_id(item) == Resolved("explicit")
