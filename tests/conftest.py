from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Ensure the repository's src/ is importable when tests run from repo root
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src")))

from registration_desk.config import DeskSettings
from registration_desk.domain.models import RegistrationData
from registration_desk.orchestrator.context import build_context
from registration_desk.orchestrator.extraction import ExtractionError
from registration_desk.orchestrator.storage import LocalStorage
from registration_desk.sheets.client import SheetReadError


def data_uri(tag: str) -> str:
    return f"data:image/jpeg;base64,{tag}"


class FakeExtractor:
    """Scripted extraction keyed by data URI; optional gates hold results back."""

    def __init__(self, results: Optional[Dict[str, Any]] = None) -> None:
        self.results = results or {}
        self.gates: Dict[str, asyncio.Event] = {}
        self.calls: List[str] = []

    def gate(self, uri: str) -> asyncio.Event:
        self.gates[uri] = asyncio.Event()
        return self.gates[uri]

    async def extract(self, uri: str) -> RegistrationData:
        self.calls.append(uri)
        if uri in self.gates:
            await self.gates[uri].wait()
        result = self.results.get(uri)
        if isinstance(result, Exception):
            raise result
        if result is None:
            raise ExtractionError(detail="no scripted result")
        return RegistrationData.from_dict(result)

    async def aclose(self) -> None:
        return None


class FakeSheets:
    def __init__(self, *, push_ok: bool = True, rows: Optional[List[Dict[str, Any]]] = None) -> None:
        self.push_ok = push_ok
        self.rows = rows or []
        self.pull_error: Optional[str] = None
        self.pushed: List[RegistrationData] = []
        self.push_gate: Optional[asyncio.Event] = None

    async def push(self, data: RegistrationData) -> bool:
        self.pushed.append(data)
        if self.push_gate is not None:
            await self.push_gate.wait()
        return self.push_ok

    async def pull_all(self) -> List[Dict[str, Any]]:
        if self.pull_error:
            raise SheetReadError(self.pull_error)
        return list(self.rows)

    async def aclose(self) -> None:
        return None


def make_settings() -> DeskSettings:
    return DeskSettings(
        extraction_api_key="test-key",
        extraction_base_url="https://extraction.test/v1/",
        extraction_model="test-model",
        sheet_url="https://sheet.test/exec",
        total_fee=20000,
    )


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def sheets() -> FakeSheets:
    return FakeSheets()


@pytest.fixture
def context(tmp_path: Path, extractor: FakeExtractor, sheets: FakeSheets):
    return build_context(
        str(tmp_path),
        settings=make_settings(),
        local=LocalStorage(str(tmp_path / "var" / "local_storage.json")),
        extractor=extractor,
        sheets=sheets,
    )
