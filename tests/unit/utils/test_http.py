"""
Unit tests for utils.http module.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from feedbrotr.utils.http import read_bounded_json


def _response(*chunks: bytes) -> MagicMock:
    response = MagicMock()
    response.content.read = AsyncMock(side_effect=[*chunks, b""])
    return response


class TestReadBoundedJson:
    async def test_single_chunk(self):
        assert await read_bounded_json(_response(b'{"names": {}}'), 1024) == {"names": {}}

    async def test_accumulates_chunks(self):
        body = json.dumps({"names": {"alice": "a" * 64}}).encode()
        response = _response(body[:10], body[10:20], body[20:])
        assert await read_bounded_json(response, 1024) == {"names": {"alice": "a" * 64}}

    async def test_requests_at_most_remaining_bytes(self):
        response = _response(b"[1,", b"2]")
        await read_bounded_json(response, 100)
        sizes = [call.args[0] for call in response.content.read.await_args_list]
        assert sizes == [101, 98, 96]

    async def test_too_large(self):
        with pytest.raises(ValueError, match="too large"):
            await read_bounded_json(_response(b"x" * 11), 10)

    async def test_exact_limit_is_allowed(self):
        assert await read_bounded_json(_response(b"[1234567]"), 9) == [1234567]

    async def test_invalid_json(self):
        with pytest.raises(json.JSONDecodeError):
            await read_bounded_json(_response(b"{"), 10)
