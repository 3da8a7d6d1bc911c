from __future__ import annotations

from ghcmodi.protocol import (
    EOL,
    EOT,
    ResponseParser,
    decode_line,
    encode_command,
    encode_map_file,
    encode_unmap_file,
    flatten_line,
)
from ghcmodi.types import Command


def test_encode_command_orders_name_path_and_args() -> None:
    command = Command(name="type", args=("3", "8"), target_path="src/A.hs")
    assert encode_command(command) == f"type src/A.hs 3 8{EOL}"


def test_encode_command_without_path() -> None:
    assert encode_command(Command(name="lang")) == f"lang{EOL}"


def test_encode_command_collapses_embedded_newlines() -> None:
    command = Command(name="info", args=("a\nb", "c\r\nd"), target_path="A.hs")
    encoded = encode_command(command)
    assert encoded == f"info A.hs a b c d{EOL}"
    assert flatten_line(encoded.removesuffix(EOL)) == encoded.removesuffix(EOL)


def test_flatten_line_is_idempotent() -> None:
    once = flatten_line("x\ny\rz")
    assert once == "x y z"
    assert flatten_line(once) == once


def test_map_file_framing_ends_with_eot() -> None:
    framed = encode_map_file("A.hs", "main = pure ()")
    assert framed == f"map-file A.hs{EOL}main = pure (){EOT}"
    assert EOT == f"{EOL}\x04{EOL}"


def test_unmap_file_framing() -> None:
    assert encode_unmap_file("A.hs") == f"unmap-file A.hs{EOL}"


def test_decode_line_replaces_nul_and_is_idempotent() -> None:
    decoded = decode_line("a :: Int\0-- Defined at A.hs:1:1")
    assert decoded == f"a :: Int{EOL}-- Defined at A.hs:1:1"
    assert decode_line(decoded) == decoded
    assert decode_line("plain") == "plain"


def test_parser_waits_for_sentinel_across_chunks() -> None:
    parser = ResponseParser()
    assert parser.feed(b"3 8 3 9 ") is False
    assert parser.feed(b'"a"\n3 1 3 17 "a -> a"\nO') is False
    assert parser.feed(b"K") is False
    assert parser.feed(b"\n") is True
    assert parser.payload() == ['3 8 3 9 "a"', '3 1 3 17 "a -> a"']
    assert parser.rejected is False


def test_parser_empty_response() -> None:
    parser = ResponseParser()
    assert parser.feed(b"OK\n") is True
    assert parser.payload() == []


def test_parser_accepts_crlf_terminators() -> None:
    parser = ResponseParser()
    assert parser.feed(b"line\r\nOK\r\n") is True
    assert parser.payload() == ["line"]


def test_parser_decodes_nul_in_payload() -> None:
    parser = ResponseParser()
    parser.feed(b"first\x00second\nOK\n")
    assert parser.payload() == [f"first{EOL}second"]


def test_parser_handles_split_utf8_sequence() -> None:
    data = "λ\nOK\n".encode()
    parser = ResponseParser()
    assert parser.feed(data[:1]) is False
    assert parser.feed(data[1:]) is True
    assert parser.payload() == ["λ"]


def test_parser_reports_ng_rejection() -> None:
    parser = ResponseParser()
    assert parser.feed(b"NG unknown command\x00oops\n") is True
    assert parser.rejected is True
    assert parser.reason == f"unknown command{EOL}oops"


def test_received_lines_include_unterminated_fragment() -> None:
    parser = ResponseParser()
    parser.feed(b"one\ntwo\nthr")
    assert parser.complete is False
    assert parser.received_lines() == ["one", "two", "thr"]


def test_parser_stops_at_first_terminator() -> None:
    parser = ResponseParser()
    assert parser.feed(b"slept 0.5\nOK\nmine\nOK\n") is True
    assert parser.payload() == ["slept 0.5"]
    assert parser.take_remainder() == "mine\nOK\n"
    assert parser.take_remainder() == ""


def test_parser_keeps_output_fed_after_completion() -> None:
    parser = ResponseParser()
    assert parser.feed("OK\nnext") is True
    assert parser.feed(" line\n") is True
    assert parser.payload() == []
    assert parser.take_remainder() == "next line\n"
