"""Tests for the response streamer."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from remsh.protocol import MARKER
from remsh.server.runner import ProcessHandle, ProcessRunner
from remsh.server.streamer import ResponseStreamer, StreamError, send_marker


def _fake_handle(chunks: list[bytes], returncode: int = 0) -> MagicMock:
    """A ProcessHandle stand-in yielding the given chunks then EOF."""
    handle = MagicMock(spec=ProcessHandle)
    handle.program = "fake"
    handle.args = ["fake", "--flag"]
    handle.read = AsyncMock(side_effect=[*chunks, b""])
    handle.wait = AsyncMock(return_value=returncode)
    return handle


class TestResponseStreamer:
    def test_rejects_bad_chunk_size(self) -> None:
        with pytest.raises(ValueError):
            ResponseStreamer(chunk_size=0)

    @pytest.mark.asyncio
    async def test_output_then_marker(self, recording_writer) -> None:
        handle = await ProcessRunner().spawn(["echo", "hello"])
        sent = await ResponseStreamer().stream(handle, recording_writer)
        await handle.wait()
        assert sent == 6
        assert recording_writer.data == b"hello\n" + MARKER

    @pytest.mark.asyncio
    async def test_marker_is_a_separate_write(self, recording_writer) -> None:
        await ResponseStreamer().stream(_fake_handle([b"abc"]), recording_writer)
        assert recording_writer.writes == [b"abc", MARKER]

    @pytest.mark.asyncio
    async def test_no_output_sends_only_marker(self, recording_writer) -> None:
        sent = await ResponseStreamer().stream(_fake_handle([]), recording_writer)
        assert sent == 0
        assert recording_writer.writes == [MARKER]

    @pytest.mark.asyncio
    async def test_large_output_is_chunked(self, recording_writer) -> None:
        handle = await ProcessRunner().spawn(["sh", "-c", "yes abcdefghi | head -n 2000"])
        sent = await ResponseStreamer(chunk_size=512).stream(handle, recording_writer)
        await handle.wait()
        assert sent == 20000
        payload = recording_writer.writes[:-1]
        assert all(len(chunk) <= 512 for chunk in payload)
        assert b"".join(payload) == b"abcdefghi\n" * 2000
        assert recording_writer.writes[-1] == MARKER

    @pytest.mark.asyncio
    async def test_read_size_follows_chunk_size(self, recording_writer) -> None:
        handle = _fake_handle([b"x"])
        await ResponseStreamer(chunk_size=128).stream(handle, recording_writer)
        handle.read.assert_awaited_with(128)

    @pytest.mark.asyncio
    async def test_pipe_read_error_still_sends_marker(self, recording_writer) -> None:
        handle = _fake_handle([])
        handle.read = AsyncMock(side_effect=[b"partial", OSError("EIO")])
        sent = await ResponseStreamer().stream(handle, recording_writer)
        assert sent == 7
        assert recording_writer.writes == [b"partial", MARKER]
        handle.kill.assert_called_once()

    @pytest.mark.asyncio
    async def test_write_error_raises_after_marker_attempt(self, writer_factory) -> None:
        writer = writer_factory(fail_after=1)
        handle = _fake_handle([b"first", b"second"])
        with pytest.raises(StreamError) as exc_info:
            await ResponseStreamer().stream(handle, writer)
        assert exc_info.value.bytes_sent == 5
        assert writer.writes == [b"first"]

    @pytest.mark.asyncio
    async def test_marker_write_failure_raises(self, writer_factory) -> None:
        writer = writer_factory(fail_after=1)
        with pytest.raises(StreamError, match="marker"):
            await ResponseStreamer().stream(_fake_handle([b"only"]), writer)


class TestSilentCommandNotice:
    @pytest.mark.asyncio
    async def test_success_notice(self, recording_writer) -> None:
        streamer = ResponseStreamer(report_silent_commands=True)
        sent = await streamer.stream(_fake_handle([], returncode=0), recording_writer)
        assert sent == 0
        assert recording_writer.writes == [
            "[Info] Comando 'fake --flag' ejecutado (sin salida)\n".encode("utf-8"),
            MARKER,
        ]

    @pytest.mark.asyncio
    async def test_failure_notice(self, recording_writer) -> None:
        handle = await ProcessRunner().spawn(["false"])
        await ResponseStreamer(report_silent_commands=True).stream(handle, recording_writer)
        assert recording_writer.data == "[Error] Comando 'false' falló\n".encode("utf-8") + MARKER

    @pytest.mark.asyncio
    async def test_no_notice_when_output_exists(self, recording_writer) -> None:
        streamer = ResponseStreamer(report_silent_commands=True)
        await streamer.stream(_fake_handle([b"out\n"]), recording_writer)
        assert recording_writer.data == b"out\n" + MARKER


class TestSendMarker:
    @pytest.mark.asyncio
    async def test_send_marker(self, recording_writer) -> None:
        assert await send_marker(recording_writer) is True
        assert recording_writer.data == MARKER

    @pytest.mark.asyncio
    async def test_send_marker_failure(self, writer_factory) -> None:
        assert await send_marker(writer_factory(fail_after=0)) is False
