"""Tests for cli_debate/executors/templates.py."""

import pytest

from cli_debate.executors.templates import (
    DEFAULT_BACKEND,
    TEMPLATES,
    CommandTemplate,
    parse_backend,
    template_for,
)
from cli_debate.models import BackendIdentity


def test_every_backend_has_template():
    assert set(TEMPLATES) == set(BackendIdentity)


def test_claude_args():
    assert template_for(BackendIdentity.CLAUDE).render("hi") == ["claude", "--print", "hi"]


def test_codex_args():
    assert template_for(BackendIdentity.CODEX).render("hi") == ["codex", "--approval-mode", "full-auto", "hi"]


def test_gemini_args():
    assert template_for(BackendIdentity.GEMINI).render("hi") == ["gemini", "hi", "--yolo", "-o", "text"]


def test_prompt_is_single_argument():
    prompt = 'Say "hello"; rm -rf / && echo $HOME\nsecond line'
    args = template_for(BackendIdentity.CLAUDE).render(prompt)
    assert args[-1] == prompt
    assert len(args) == 3


def test_extra_args_appended():
    args = template_for(BackendIdentity.CLAUDE).render("p", ("--model", "opus"))
    assert args == ["claude", "--print", "p", "--model", "opus"]


def test_template_is_immutable():
    template = CommandTemplate("tool", ("{prompt}",))
    with pytest.raises(AttributeError):
        template.command = "other"  # type: ignore[misc]


@pytest.mark.parametrize(
    "value,expected",
    [
        ("codex", BackendIdentity.CODEX),
        ("  Gemini ", BackendIdentity.GEMINI),
        (BackendIdentity.CODEX, BackendIdentity.CODEX),
        ("gpt-4", DEFAULT_BACKEND),
        ("", DEFAULT_BACKEND),
        (None, DEFAULT_BACKEND),
    ],
)
def test_parse_backend(value, expected):
    assert parse_backend(value) is expected


def test_default_backend_is_claude():
    assert DEFAULT_BACKEND is BackendIdentity.CLAUDE
