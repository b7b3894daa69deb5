"""Pytest configuration and fixtures for tests."""

import json

import pytest

from zhidao_client.config import ClientConfig
from zhidao_client.notifications import RequestTracker
from zhidao_client.session import StreamSession
from zhidao_client.state import QueryState


def sse(*events) -> bytes:
    """Encode events as one SSE frame per event."""
    return "".join(
        f"data: {json.dumps(event, ensure_ascii=False)}\n\n" for event in events
    ).encode("utf-8")


@pytest.fixture(autouse=True)
def mock_env_vars(monkeypatch, tmp_path):
    """Set default environment variables for tests."""
    monkeypatch.setenv("ZHIDAO_BASE_URL", "http://zhidao.test")
    monkeypatch.setenv("ZHIDAO_TIMEOUT", "300")
    monkeypatch.setenv("ZHIDAO_LOCALE", "en")
    monkeypatch.setenv("ZHIDAO_HISTORY_PATH", str(tmp_path / "history.json"))


@pytest.fixture
def config(tmp_path):
    """Client configuration pointing at a fake backend."""
    return ClientConfig(
        base_url="http://zhidao.test",
        timeout=5.0,
        locale="en",
        history_path=tmp_path / "history.json",
    )


@pytest.fixture
def state():
    return QueryState()


@pytest.fixture
def tracker():
    return RequestTracker()


@pytest.fixture
def session(config, state, tracker):
    """Stream session without a network client."""
    session = StreamSession(config, state=state, tracker=tracker)
    yield session
    session.close()


@pytest.fixture
def sample_papers():
    """Sample papers as sent in a papers_finding event."""
    return [
        {
            "id": "p1",
            "title": "Attention Is All You Need",
            "authors": "Ashish Vaswani",
            "year": "2017",
            "source": "arXiv",
            "abstract": "The dominant sequence transduction models...",
            "link": "https://arxiv.org/abs/1706.03762",
        },
        {
            "id": "p2",
            "title": "Deep Residual Learning for Image Recognition",
            "authors": "Kaiming He",
            "year": "2016",
            "link": "https://arxiv.org/abs/1512.03385",
        },
        {
            "id": "p3",
            "title": "Language Models are Few-Shot Learners",
            "authors": "Tom Brown",
            "year": "2020",
            "link": "https://arxiv.org/abs/2005.14165",
        },
    ]


@pytest.fixture
def full_stream(sample_papers):
    """A complete, successful event sequence for one question."""
    return [
        {"status": "connected", "message": "Connected to ZhiDao"},
        {"status": "stage_update", "stage": "evaluation", "message": "Evaluating question"},
        {"status": "substage_update", "stage": "evaluation_complete", "canAnswer": True},
        {"status": "stage_update", "stage": "paper_retrieval"},
        {"status": "substage_update", "stage": "search_term_selected", "queryWord": "transformers"},
        {"status": "papers_finding", "papers": sample_papers, "count": 3},
        {
            "status": "substage_update",
            "stage": "papers_selected",
            "selectedPapers": [{"title": "Attention Is All You Need"}],
        },
        {"status": "stage_update", "stage": "paper_analysis"},
        {"status": "substage_update", "stage": "paper_analysis_complete"},
        {"status": "stage_update", "stage": "answer_generation"},
        {"status": "streaming"},
        {"status": "token", "token": "Transformers "},
        {"status": "token", "token": "use attention "},
        {"status": "token", "token": "[Vaswani2017]."},
        {"status": "chunk_complete"},
        {
            "status": "complete",
            "result": {
                "answer": "Transformers use attention [Vaswani2017].",
                "queryWord": "transformers",
                "processSteps": ["evaluate", "retrieve", "analyze", "answer"],
                "citationMapping": [
                    {
                        "key": "Vaswani2017",
                        "title": "Attention Is All You Need",
                        "authors": "Ashish Vaswani",
                        "year": "2017",
                        "link": "https://arxiv.org/abs/1706.03762",
                    }
                ],
            },
        },
    ]


@pytest.fixture
def encode_sse():
    """The SSE frame encoder, for tests that build their own streams."""
    return sse
