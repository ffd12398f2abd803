"""Tests for dynamic collaborator loading."""

from __future__ import annotations

import sys
import types
from typing import TYPE_CHECKING

import pytest

from voxrelay.config.settings import ProviderSettings
from voxrelay.exceptions import CollaboratorLoadError
from voxrelay.providers.interface import ResponseGenerator, SpeechSynthesizer
from voxrelay.providers.loader import load_collaborator, load_collaborators

from tests.helpers import FakeGenerator, FakeRecognizer, FakeSynthesizer

if TYPE_CHECKING:
    from voxrelay._types import GenerationOptions


class _EchoGenerator(ResponseGenerator):
    async def generate_response(self, text: str, options: GenerationOptions) -> str:
        return text


class _AbstractMiddle(ResponseGenerator):
    """Still abstract; must not be picked up."""


def _module(name: str, **members: object) -> types.ModuleType:
    mod = types.ModuleType(name)
    for key, value in members.items():
        setattr(mod, key, value)
    return mod


class TestLoadCollaborator:
    def test_loads_single_concrete_subclass(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setitem(
            sys.modules,
            "acme_llm",
            _module("acme_llm", Echo=_EchoGenerator, Middle=_AbstractMiddle, Base=ResponseGenerator),
        )

        generator = load_collaborator("acme_llm", ResponseGenerator)

        assert isinstance(generator, _EchoGenerator)

    def test_missing_module(self) -> None:
        with pytest.raises(CollaboratorLoadError, match="cannot import module"):
            load_collaborator("voxrelay_no_such_module_xyz", ResponseGenerator)

    def test_no_concrete_subclass(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setitem(sys.modules, "acme_empty", _module("acme_empty"))

        with pytest.raises(CollaboratorLoadError, match="no concrete subclass"):
            load_collaborator("acme_empty", SpeechSynthesizer)

    def test_multiple_concrete_subclasses(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setitem(
            sys.modules,
            "acme_many",
            _module("acme_many", Echo=_EchoGenerator, Fake=FakeGenerator),
        )

        with pytest.raises(CollaboratorLoadError, match="multiple concrete subclasses"):
            load_collaborator("acme_many", ResponseGenerator)


class TestLoadCollaborators:
    def test_loads_all_three(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setitem(sys.modules, "acme_stt", _module("acme_stt", R=FakeRecognizer))
        monkeypatch.setitem(sys.modules, "acme_llm", _module("acme_llm", G=FakeGenerator))
        monkeypatch.setitem(sys.modules, "acme_tts", _module("acme_tts", S=FakeSynthesizer))

        collaborators = load_collaborators(
            ProviderSettings(recognizer="acme_stt", generator="acme_llm", synthesizer="acme_tts")
        )

        assert isinstance(collaborators.recognizer, FakeRecognizer)
        assert isinstance(collaborators.generator, FakeGenerator)
        assert isinstance(collaborators.synthesizer, FakeSynthesizer)

    def test_unset_path_is_reported_by_env_name(self) -> None:
        with pytest.raises(CollaboratorLoadError, match="VOXRELAY_GENERATOR"):
            load_collaborators(ProviderSettings(recognizer="acme_stt"))
