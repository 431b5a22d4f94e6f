import asyncio
from typing import Optional

from heftcoder.settings import get_settings

_semaphore: Optional[asyncio.Semaphore] = None


def get_llm_semaphore() -> asyncio.Semaphore:
    """
    Get the global semaphore for upstream model requests.
    Concurrent SSE requests share it so the Langdock quota is not exceeded.
    """
    global _semaphore
    if _semaphore is None:
        settings = get_settings()
        _semaphore = asyncio.Semaphore(settings.llm_semaphore)
    return _semaphore


def reset_llm_semaphore() -> None:
    global _semaphore
    _semaphore = None
