"""Unit tests for the helpers shared across the chat runtime."""

from __future__ import annotations

import pytest

from mlc_chat_cli.inference import chat_common
from mlc_chat_cli.inference.chat_common import Utf8DecodeError, segment_utf8


@pytest.mark.parametrize(
    "text, expected_lengths",
    [
        ("abc", [1, 1, 1]),
        ("é", [2]),
        ("你好", [3, 3]),
        ("a😀b", [1, 4, 1]),
        ("", []),
    ],
)
def test_segment_utf8_emits_whole_characters(text: str, expected_lengths: list[int]) -> None:
    data = text.encode("utf-8")

    clusters = segment_utf8(data)

    assert "".join(clusters).encode("utf-8") == data
    assert [len(cluster.encode("utf-8")) for cluster in clusters] == expected_lengths


def test_segment_utf8_accepts_text() -> None:
    assert segment_utf8("Grüße, 世界 🌍") == list("Grüße, 世界 🌍")


@pytest.mark.parametrize(
    "data, offset",
    [
        (b"ab\x80", 2),  # stray continuation byte
        (b"\xff", 0),  # not a lead byte
        (b"ok\xe4\xbd", 2),  # truncated three byte sequence
        (b"\xc3\x28", 0),  # continuation byte has the wrong pattern
        (b"x\xf0\x9f\x98", 1),
    ],
)
def test_segment_utf8_rejects_malformed_sequences(data: bytes, offset: int) -> None:
    with pytest.raises(Utf8DecodeError) as excinfo:
        segment_utf8(data)

    assert excinfo.value.offset == offset
    assert isinstance(excinfo.value, ValueError)


def test_segment_utf8_keeps_overlong_sequence_as_one_cluster() -> None:
    clusters = segment_utf8(b"a\xc0\x80b")

    assert len(clusters) == 3
    assert clusters[0] == "a"
    assert clusters[2] == "b"


@pytest.mark.parametrize(
    "platform, expected",
    [
        ("win32", (".dll",)),
        ("darwin", (".dylib", ".so")),
        ("linux", (".so",)),
    ],
)
def test_library_suffixes(platform: str, expected: tuple[str, ...]) -> None:
    assert chat_common.library_suffixes(platform) == expected


@pytest.mark.parametrize(
    "machine, expected",
    [
        ("x86_64", "_x86_64"),
        ("AMD64", "_x86_64"),
        ("aarch64", "_arm64"),
        ("arm64", "_arm64"),
        ("riscv64", ""),
    ],
)
def test_arch_suffix(machine: str, expected: str) -> None:
    assert chat_common.arch_suffix(machine) == expected


def test_quantization_presets_are_ordered() -> None:
    assert chat_common.QUANTIZATION_PRESETS[:2] == ("q3f16_0", "q4f16_0")
    assert len(set(chat_common.QUANTIZATION_PRESETS)) == len(chat_common.QUANTIZATION_PRESETS)
