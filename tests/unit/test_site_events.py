"""Unit tests for site event notifications."""

from __future__ import annotations

import json

import pytest

from pinchwire.config import EventsConfig


def _bodies(gateway) -> list[dict]:
    return [json.loads(request.content) for request in gateway.requests]


@pytest.mark.asyncio
async def test_post_status_change_builds_message_and_context(app_factory, gateway) -> None:
    app = app_factory()

    sent = await app.events.post_status_change(
        post_id=5, title="Hello", old_status="draft", new_status="publish", url="https://site/hello"
    )

    assert sent is True
    body = _bodies(gateway)[0]
    assert body["message"] == '[Test Site - post_status_change] Post "Hello" changed from draft to publish.'
    assert body["metadata"]["data"]["post_id"] == 5
    assert body["metadata"]["data"]["url"] == "https://site/hello"


@pytest.mark.asyncio
async def test_same_status_transitions_are_ignored(app_factory, gateway) -> None:
    app = app_factory()
    assert await app.events.post_status_change(post_id=1, title="t", old_status="draft", new_status="draft") is False
    assert await app.events.order_status_change(order_id=1, old_status="paid", new_status="paid") is False
    assert gateway.requests == []


@pytest.mark.asyncio
async def test_disabled_events_are_not_sent(app_factory, gateway) -> None:
    app = app_factory()
    app.events.configure(EventsConfig(enabled=["new_comment"]))

    assert await app.events.post_delete(post_id=9, title="Gone") is False
    assert await app.events.new_comment(comment_id=1, post_id=9, author="Sam", content="word " * 60) is True

    body = _bodies(gateway)[0]
    assert body["metadata"]["event"] == "new_comment"
    excerpt = body["metadata"]["data"]["content"]
    assert excerpt.endswith("...")
    assert len(excerpt.split()) == 50


@pytest.mark.asyncio
async def test_user_register_entries_are_tied_to_the_user(app_factory) -> None:
    app = app_factory()

    await app.events.user_register(user_id=42, display_name="New Person", roles=["subscriber"])

    erasure = await app.ledger.erase_user_data(42)
    assert erasure.items_removed == 1
    assert erasure.done is True
