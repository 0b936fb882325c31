"""Tests for private key normalization and source resolution."""

import dataclasses
import io

import pytest

from conftest import KEY_ONE
from trapkeeper.credentials import (
    CredentialResolver,
    is_valid_private_key,
    normalize_private_key,
    read_key_file,
)
from trapkeeper.errors import InvalidCredentialFormat, MissingCredential

KEY_A = "ab" * 32
KEY_B = "4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
KEY_C = "Cd" * 32


class TTYInput(io.StringIO):
    def isatty(self):
        return True


def no_prompt(prompt):
    raise AssertionError("prompted unexpectedly")


def make_resolver(settings, environ=None, stdin=None, secret=no_prompt, visible=no_prompt):
    return CredentialResolver(
        settings,
        environ=environ or {},
        stdin=stdin if stdin is not None else TTYInput(""),
        secret_prompt=secret,
        visible_prompt=visible,
    )


@pytest.mark.parametrize(
    "raw",
    [
        KEY_A,
        KEY_A.upper(),
        "0x" + KEY_A,
        "0X" + KEY_A.upper(),
        "  0x" + KEY_A + "\n",
        "ab ab\tab\r\n" + "ab" * 29,
        "0x" + " ".join(KEY_A[i:i + 8] for i in range(0, 64, 8)),
    ],
)
def test_normalize_accepts_hex_variants(raw):
    assert normalize_private_key(raw).lower() == KEY_A


@pytest.mark.parametrize(
    "raw",
    ["", "0x", "0x1234", "a" * 63, "a" * 65, "g" * 64, "0x0x" + "a" * 64, "ab" * 31 + "zz"],
)
def test_normalize_rejects_invalid(raw):
    with pytest.raises(InvalidCredentialFormat):
        normalize_private_key(raw)
    assert not is_valid_private_key(raw)


def test_primary_env_wins(settings):
    environ = {"DROSERA_PRIVATE_KEY": KEY_A, "ETH_PRIVATE_KEY": KEY_B}
    settings = dataclasses.replace(settings, private_key=KEY_C)
    assert make_resolver(settings, environ).resolve() == KEY_A


def test_secondary_env_beats_flag(settings):
    settings = dataclasses.replace(settings, private_key=KEY_C)
    resolver = make_resolver(settings, {"ETH_PRIVATE_KEY": "0x" + KEY_B})
    assert resolver.resolve() == KEY_B


def test_invalid_env_value_is_skipped(settings, capsys):
    settings = dataclasses.replace(settings, private_key=KEY_C)
    resolver = make_resolver(settings, {"DROSERA_PRIVATE_KEY": "not-a-key-value"})
    assert resolver.resolve() == KEY_C
    captured = capsys.readouterr()
    assert "DROSERA_PRIVATE_KEY" in captured.out
    assert "not-a-key-value" not in captured.out + captured.err


def test_key_file_first_non_empty_line(settings, tmp_path):
    key_file = tmp_path / "pk.txt"
    key_file.write_text("\n   \n0x" + KEY_B + "\n" + KEY_A + "\n", encoding="utf-8")
    settings = dataclasses.replace(settings, private_key_file=key_file)
    assert make_resolver(settings).resolve() == KEY_B


def test_unreadable_key_file_is_ignored(settings, tmp_path):
    assert read_key_file(tmp_path / "missing.txt") is None
    settings = dataclasses.replace(
        settings, private_key_file=tmp_path / "missing.txt", non_interactive=True
    )
    with pytest.raises(MissingCredential):
        make_resolver(settings).resolve()


def test_piped_stdin_line(settings):
    resolver = make_resolver(settings, stdin=io.StringIO(KEY_A + "\nsecond line\n"))
    assert resolver.resolve() == KEY_A


def test_flag_beats_stdin(settings):
    settings = dataclasses.replace(settings, private_key=KEY_C)
    stdin = io.StringIO(KEY_A + "\n")
    assert make_resolver(settings, stdin=stdin).resolve() == KEY_C
    assert stdin.tell() == 0


def test_non_interactive_missing_never_prompts(settings):
    settings = dataclasses.replace(settings, non_interactive=True, private_key="0x1234")
    with pytest.raises(MissingCredential):
        make_resolver(settings, stdin=TTYInput(KEY_A)).resolve()


def test_non_interactive_empty_piped_stdin(settings):
    settings = dataclasses.replace(settings, non_interactive=True)
    with pytest.raises(MissingCredential):
        make_resolver(settings, stdin=io.StringIO("")).resolve()


def test_masked_prompt(settings):
    resolver = make_resolver(settings, secret=lambda prompt: "0x" + KEY_ONE)
    assert resolver.resolve() == KEY_ONE


def test_visible_retry_after_invalid_masked_input(settings):
    prompts = []

    def visible(prompt):
        prompts.append(prompt)
        return KEY_B

    resolver = make_resolver(settings, secret=lambda prompt: "oops", visible=visible)
    assert resolver.resolve() == KEY_B
    assert len(prompts) == 1


def test_both_prompts_invalid(settings):
    resolver = make_resolver(settings, secret=lambda prompt: "oops", visible=lambda prompt: "still bad")
    with pytest.raises(InvalidCredentialFormat):
        resolver.resolve()
