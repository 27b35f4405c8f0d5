"""Shared FastAPI dependencies."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from reelgraph.config import get_settings
from reelgraph.render.adapter import LocalRenderAdapter, RenderAdapter


@lru_cache
def get_render_adapter() -> RenderAdapter:
    """Process-wide adapter for the configured render backend."""
    backend = get_settings().render_backend
    if backend == "celery":
        from reelgraph.render.remote import CeleryRenderAdapter

        return CeleryRenderAdapter()
    if backend == "http":
        from reelgraph.render.remote import HttpJobQueueAdapter

        return HttpJobQueueAdapter()
    return LocalRenderAdapter()


Adapter = Annotated[RenderAdapter, Depends(get_render_adapter)]
