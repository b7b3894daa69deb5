"""Tests for SSE framing."""

import pytest

from zhidao_client.errors import DecodeError
from zhidao_client.framing import SSEFrameBuffer, decode_frame, extract_payloads, frame_chunks


TOKEN_FRAME = b'data: {"status":"token","token":"ab"}\n\n'


def feed_all(buffer, *chunks):
    """Feed chunks and decode every completed frame."""
    payloads = []
    for chunk in chunks:
        for frame in buffer.feed(chunk):
            payloads.extend(decode_frame(frame))
    return payloads


class TestSSEFrameBuffer:
    """Tests for SSEFrameBuffer."""

    def test_single_frame(self):
        """Test a complete frame yields its payload."""
        buffer = SSEFrameBuffer()

        assert feed_all(buffer, TOKEN_FRAME) == ['{"status":"token","token":"ab"}']
        assert buffer.pending == b""

    @pytest.mark.parametrize("offset", range(1, len(TOKEN_FRAME)))
    def test_split_at_every_offset(self, offset):
        """Test a frame split at any byte offset yields exactly one frame."""
        buffer = SSEFrameBuffer()

        first = buffer.feed(TOKEN_FRAME[:offset])
        second = buffer.feed(TOKEN_FRAME[offset:])

        assert first == []
        assert second == [TOKEN_FRAME[:-2]]

    def test_incomplete_tail_is_retained(self):
        """Test that a fragment without a blank line is not dispatched early."""
        buffer = SSEFrameBuffer()

        payloads = feed_all(buffer, b'data: {"status":"connected"}\n\ndata: {"status":"tok')

        assert payloads == ['{"status":"connected"}']
        assert buffer.pending == b'data: {"status":"tok'

    def test_single_newline_does_not_end_frame(self):
        """Test that one newline is not a frame boundary."""
        buffer = SSEFrameBuffer()

        assert buffer.feed(b'data: {"status":"streaming"}\n') == []
        assert feed_all(buffer, b"\n") == ['{"status":"streaming"}']

    def test_multiple_frames_in_one_chunk(self):
        """Test every complete frame is returned in order."""
        buffer = SSEFrameBuffer()

        assert feed_all(buffer, b"data: 1\n\ndata: 2\n\ndata: 3\n\n") == ["1", "2", "3"]

    def test_clear(self):
        """Test clear drops pending bytes."""
        buffer = SSEFrameBuffer()
        buffer.feed(b"data: partial")

        buffer.clear()

        assert buffer.pending == b""
        assert feed_all(buffer, b"\n\n") == []


class TestDecodeFrame:
    """Tests for decode_frame and extract_payloads."""

    def test_multiple_data_lines_in_one_frame(self):
        """Test each data line of a frame is its own payload."""
        assert decode_frame(b"data: first\ndata: second") == ["first", "second"]

    def test_non_data_lines_ignored(self):
        """Test event:, id: and comment lines are skipped."""
        assert decode_frame(b"event: message\nid: 7\n: keepalive\ndata: x") == ["x"]

    def test_prefix_requires_space(self):
        """Test that only the exact 'data: ' prefix counts."""
        assert extract_payloads("data:no-space") == []

    def test_multibyte_character_split_across_chunks(self):
        """Test UTF-8 characters split between chunks are reassembled."""
        frame = 'data: {"status":"token","token":"论文"}\n\n'.encode("utf-8")
        split = frame.index("论".encode("utf-8")) + 1
        buffer = SSEFrameBuffer()

        assert buffer.feed(frame[:split]) == []
        assert feed_all(buffer, frame[split:]) == ['{"status":"token","token":"论文"}']

    def test_invalid_utf8_raises_decode_error(self):
        """Test an undecodable frame raises DecodeError."""
        with pytest.raises(DecodeError) as exc_info:
            decode_frame(b'data: {"token":"\xff"}')

        assert "Invalid UTF-8" in str(exc_info.value)


class TestInvalidFrameIsolation:
    """Tests that one undecodable frame does not affect its neighbours."""

    GOOD_A = b'data: {"status":"token","token":"A"}\n\n'
    BAD = b'data: {"status":"token","token":"\xff"}\n\n'
    GOOD_B = b'data: {"status":"token","token":"B"}\n\n'

    def decode_each(self, buffer, *chunks):
        payloads, errors = [], 0
        for chunk in chunks:
            for frame in buffer.feed(chunk):
                try:
                    payloads.extend(decode_frame(frame))
                except DecodeError:
                    errors += 1
        return payloads, errors

    def test_one_chunk(self):
        """Test frames around a bad frame in the same chunk survive."""
        payloads, errors = self.decode_each(SSEFrameBuffer(), self.GOOD_A + self.BAD + self.GOOD_B)

        assert payloads == ['{"status":"token","token":"A"}', '{"status":"token","token":"B"}']
        assert errors == 1

    @pytest.mark.parametrize("size", [1, 3, 7, 20])
    def test_split_chunks(self, size):
        """Test the outcome does not depend on chunk boundaries."""
        stream = self.GOOD_A + self.BAD + self.GOOD_B
        chunks = [stream[i:i + size] for i in range(0, len(stream), size)]

        payloads, errors = self.decode_each(SSEFrameBuffer(), *chunks)

        assert payloads == ['{"status":"token","token":"A"}', '{"status":"token","token":"B"}']
        assert errors == 1

    def test_frame_split_before_bad_frame(self):
        """Test a frame completed in the same chunk as a bad frame survives."""
        stream = self.GOOD_A + self.BAD + self.GOOD_B
        cut = len(self.GOOD_A) // 2

        payloads, errors = self.decode_each(SSEFrameBuffer(), stream[:cut], stream[cut:])

        assert len(payloads) == 2
        assert errors == 1


class TestFrameChunks:
    """Tests for frame_chunks."""

    def test_chunking_does_not_change_payloads(self):
        """Test that any chunking yields the same payload sequence."""
        stream = b"".join(
            f'data: {{"status":"token","token":"t{i}"}}\n\n'.encode() for i in range(20)
        )
        whole = frame_chunks([stream])

        for size in (1, 2, 3, 7, 16, 64):
            chunks = [stream[i:i + size] for i in range(0, len(stream), size)]
            assert frame_chunks(chunks) == whole

        assert len(whole) == 20

    def test_bad_frame_skipped(self):
        """Test undecodable frames are dropped from the payload sequence."""
        assert frame_chunks([b"data: 1\n\ndata: \xff\n\ndata: 2\n\n"]) == ["1", "2"]
