"""Dynamic loader for collaborator implementations.

Collaborators are configured by dotted module path (``VOXRELAY_RECOGNIZER``
and friends). The module is scanned for exactly one concrete subclass of the
requested ABC, which is instantiated with no arguments.
"""

from __future__ import annotations

import importlib
import inspect
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from voxrelay.exceptions import CollaboratorLoadError
from voxrelay.logging import get_logger
from voxrelay.providers.interface import ResponseGenerator, SpeechRecognizer, SpeechSynthesizer

if TYPE_CHECKING:
    from voxrelay.config.settings import ProviderSettings

logger = get_logger("providers.loader")

_T = TypeVar("_T")


@dataclass(frozen=True, slots=True)
class Collaborators:
    """The three collaborators a server instance runs with."""

    recognizer: SpeechRecognizer
    generator: ResponseGenerator
    synthesizer: SpeechSynthesizer


def load_collaborator(import_path: str, base_type: type[_T]) -> _T:
    """Import a module and instantiate its single concrete ``base_type`` subclass.

    Raises:
        CollaboratorLoadError: If the module cannot be imported, or it does not
            expose exactly one concrete subclass of ``base_type``.
    """
    try:
        module = importlib.import_module(import_path)
    except ImportError as exc:
        raise CollaboratorLoadError(import_path, f"cannot import module: {exc}") from exc

    candidates: list[type[_T]] = [
        obj
        for _name, obj in inspect.getmembers(module, inspect.isclass)
        if issubclass(obj, base_type) and obj is not base_type and not inspect.isabstract(obj)
    ]

    if not candidates:
        raise CollaboratorLoadError(
            import_path, f"no concrete subclass of {base_type.__name__} found"
        )
    if len(candidates) > 1:
        names = ", ".join(sorted(c.__name__ for c in candidates))
        raise CollaboratorLoadError(
            import_path,
            f"multiple concrete subclasses of {base_type.__name__}: {names}. "
            "Expose exactly one per module.",
        )

    cls = candidates[0]
    logger.info("collaborator_loaded", import_path=import_path, cls=cls.__name__)
    return cls()


def load_collaborators(settings: ProviderSettings) -> Collaborators:
    """Load all three collaborators from settings.

    Raises:
        CollaboratorLoadError: If a path is missing or cannot be loaded.
    """
    paths = {
        "VOXRELAY_RECOGNIZER": settings.recognizer,
        "VOXRELAY_GENERATOR": settings.generator,
        "VOXRELAY_SYNTHESIZER": settings.synthesizer,
    }
    for env_name, path in paths.items():
        if not path:
            raise CollaboratorLoadError(env_name, "not set")

    return Collaborators(
        recognizer=load_collaborator(settings.recognizer, SpeechRecognizer),  # type: ignore[arg-type]
        generator=load_collaborator(settings.generator, ResponseGenerator),  # type: ignore[arg-type]
        synthesizer=load_collaborator(settings.synthesizer, SpeechSynthesizer),  # type: ignore[arg-type]
    )
