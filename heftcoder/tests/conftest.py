import pytest

from heftcoder import settings as settings_module
from heftcoder.llm.adapter import reset_llm_adapter
from heftcoder.llm.concurrency import reset_llm_semaphore


@pytest.fixture(autouse=True)
def test_env(monkeypatch):
    monkeypatch.setenv("LLM_MODE", "mock")
    monkeypatch.setenv("QA_DELAY_SECONDS", "0")
    monkeypatch.delenv("ADMIN_API_KEY", raising=False)
    monkeypatch.delenv("HEFTCODER_API_KEY", raising=False)
    monkeypatch.delenv("LANGDOCK_API_KEY", raising=False)
    settings_module.get_settings.cache_clear()
    settings_module.get_client_settings.cache_clear()
    reset_llm_adapter()
    reset_llm_semaphore()
    yield
    settings_module.get_settings.cache_clear()
    settings_module.get_client_settings.cache_clear()
    reset_llm_adapter()
    reset_llm_semaphore()
