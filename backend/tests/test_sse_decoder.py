"""Tests for the incremental event-stream decoder."""

from agent_console.agent.sse import SSEDecoder


def test_payloads_split_across_chunks() -> None:
    decoder = SSEDecoder()

    assert decoder.feed('data: {"a"') == []
    assert decoder.feed(": 1}\n") == []
    assert decoder.feed("\ndata: {\"b\": 2}\n\n") == ['{"a": 1}', '{"b": 2}']


def test_block_with_several_data_lines() -> None:
    decoder = SSEDecoder()

    payloads = decoder.feed("event: chunk\ndata: one\ndata: two\n\n")

    assert payloads == ["one", "two"]


def test_done_sentinel_stops_decoding() -> None:
    decoder = SSEDecoder()

    payloads = decoder.feed("data: first\n\ndata: [DONE]\n\ndata: late\n\n")

    assert payloads == ["first"]
    assert decoder.done
    assert decoder.feed("data: later\n\n") == []
    assert decoder.flush() == []


def test_crlf_line_endings() -> None:
    decoder = SSEDecoder()

    assert decoder.feed("data: x\r\n\r\n") == ["x"]


def test_flush_returns_unterminated_block() -> None:
    decoder = SSEDecoder()

    assert decoder.feed("data: tail") == []
    assert decoder.flush() == ["tail"]
    assert decoder.flush() == []


def test_comments_and_empty_data_are_ignored() -> None:
    decoder = SSEDecoder()

    assert decoder.feed(": keep-alive\n\ndata:\n\ndata:   \n\n") == []
