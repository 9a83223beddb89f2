"""Shared test fixtures."""

import pytest

from misskey_context.core.emoji.cache import EmojiCache
from misskey_context.service import ContextService
from tests.unit.fakes import CONVERSATION_ABC, FakeApi


@pytest.fixture
def fake_api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def thread_api(fake_api: FakeApi) -> FakeApi:
    """FakeApi answering notes/show with B and notes/conversation with A, B, C."""
    fake_api.add_response("notes/show", CONVERSATION_ABC[1])
    fake_api.add_response("notes/conversation", list(CONVERSATION_ABC))
    return fake_api


@pytest.fixture
def service(fake_api: FakeApi) -> ContextService:
    return ContextService(fake_api, EmojiCache())
