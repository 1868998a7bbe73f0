from __future__ import annotations
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from ..core.errors import UnsupportedLanguage
from .base import LanguageAdapter, LanguagePlan
from .languages import CppAdapter, JavaAdapter, JavaScriptAdapter, PythonAdapter

_REGISTRY: Dict[str, LanguageAdapter] = {}


def register(adapter: LanguageAdapter) -> LanguageAdapter:
    if not adapter.name:
        raise ValueError("adapter has no language tag")
    _REGISTRY[adapter.name] = adapter
    return adapter


def unregister(name: str) -> None:
    _REGISTRY.pop(name, None)


def get_adapter(language: str) -> LanguageAdapter:
    try:
        return _REGISTRY[language]
    except KeyError:
        raise UnsupportedLanguage(language) from None


def supported_languages() -> List[str]:
    return sorted(_REGISTRY)


def resolve(language: str, source_dir: Path, code: str, *, memory_mb: int,
            runtimes: Optional[Mapping[str, str]] = None) -> LanguagePlan:
    """Map a language tag to its source file, build command and run command.

    Nothing is written or executed here; call ``write_source()`` on the plan.
    """
    return get_adapter(language).plan(source_dir, code, memory_mb, runtimes or {})


for _adapter in (CppAdapter(), PythonAdapter(), JavaAdapter(), JavaScriptAdapter()):
    register(_adapter)
