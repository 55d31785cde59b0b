"""Pytest configuration and fixtures."""

from pathlib import Path

import pytest

from deminify.cache import CacheStore
from deminify.config import Config
from deminify.llm.base import BaseLLMClient


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path: Path):
    """Keep tests away from the user's .env files and shared cache."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DEMINIFY_CACHE_DIR", str(tmp_path / "default-cache"))
    for name in ("OPENAI_API_KEY", "OPENAI_BASE_URL", "OPENAI_MODEL", "DEMINIFY_LLM_API_KEY", "DEMINIFY_LLM_MODEL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config() -> Config:
    """Config without the process-wide cache."""
    return Config(use_cache=False)


@pytest.fixture
def cache(tmp_path: Path) -> CacheStore:
    """Cache store in a private directory."""
    return CacheStore(tmp_path / "cache")


@pytest.fixture
def minified_code() -> str:
    """Return minified JavaScript code for testing."""
    return (
        'var a=1;function add(x,y){return x+y}'
        'var result=add(a,2);console.log("decrypt",result);\n'
    )


@pytest.fixture
def multiline_code() -> str:
    """Return code spread over several original lines."""
    return (
        "var key=1;\n"
        "function run(data){return data+key}\n"
        "try{run(2)}catch(err){console.log(err)}\n"
        "var output=run(key);\n"
        "function Decrypt(v){return v}\n"
    )


@pytest.fixture
def write_source(tmp_path: Path):
    """Write a source file into the test directory and return its path."""

    def _write(name: str, content: str) -> Path:
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return path

    return _write


class FakeLLMClient(BaseLLMClient):
    """LLM client answering every request with a canned response."""

    def __init__(self, response: str):
        super().__init__(api_key="test-key", model="fake-model")
        self.response = response
        self.requests: list[tuple[str, str]] = []
        self.closed = False

    async def complete(self, prompt, system_prompt=None):
        self.requests.append((prompt, system_prompt))
        return self.response

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_llm():
    """Factory for canned-response LLM clients."""
    return FakeLLMClient
