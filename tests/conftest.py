"""
Shared fixtures for ResearchAid backend tests.

No network and no browser: the completion client and the PDF pipeline are
replaced with in-process fakes through ``app.dependency_overrides``.
Uploads go to a per-test temporary directory.
"""
from __future__ import annotations

from typing import AsyncGenerator, Iterable, List, Optional, Tuple

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from researchaid.config import settings
from researchaid.dependencies.services import get_completion_client, get_pdf_pipeline
from researchaid.main import app
from researchaid.services.document_store import document_store
from researchaid.services.llm_client import CompletionOptions
from researchaid.services.pdf_renderer import PdfEngine, PdfRenderPipeline, RenderJob


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeCompletionClient:
    """
    Stands in for ChatCompletionClient.  Returns queued responses in order
    (the last one repeats) and records every call.
    """

    def __init__(
        self,
        responses: Iterable[str] = ("ok",),
        chunks: Iterable[str] = (),
        configured: bool = True,
        error: Optional[Exception] = None,
    ) -> None:
        self.responses = list(responses)
        self.chunks = list(chunks)
        self.configured = configured
        self.error = error
        self.calls: List[Tuple[str, Optional[CompletionOptions]]] = []

    async def complete(self, prompt: str, options: Optional[CompletionOptions] = None) -> str:
        self.calls.append((prompt, options))
        if self.error is not None:
            raise self.error
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]

    async def complete_stream(self, prompt: str, options: Optional[CompletionOptions] = None):
        self.calls.append((prompt, options))
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error


class FakePdfEngine(PdfEngine):
    name = "fake"

    def __init__(self) -> None:
        self.jobs: List[RenderJob] = []

    async def render(self, job: RenderJob) -> bytes:
        self.jobs.append(job)
        return b"%PDF-1.4 fake"


# ---------------------------------------------------------------------------
# Per-test fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    """Point UPLOAD_DIR at a fresh temporary directory."""
    path = tmp_path / "uploads"
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(path))
    return path


@pytest.fixture(autouse=True)
def clean_store():
    yield
    for document in document_store.all():
        document_store.delete(document["document_id"])


@pytest.fixture
def fake_llm() -> FakeCompletionClient:
    return FakeCompletionClient()


@pytest.fixture
def fake_engine() -> FakePdfEngine:
    return FakePdfEngine()


@pytest_asyncio.fixture
async def client(
    fake_llm: FakeCompletionClient,
    fake_engine: FakePdfEngine,
) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx AsyncClient wired to the FastAPI app with the completion client
    and PDF pipeline overridden.
    """
    app.dependency_overrides[get_completion_client] = lambda: fake_llm
    app.dependency_overrides[get_pdf_pipeline] = lambda: PdfRenderPipeline([fake_engine])

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

