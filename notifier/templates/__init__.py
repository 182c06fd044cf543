"""Template storage, caching and rendering for notification emails."""

from .models import (
    RenderedContent,
    TemplateError,
    TemplateFetchError,
    TemplateNotFoundError,
    TemplateRenderError,
)
from .rendering import (
    JinjaRenderStrategy,
    PlaceholderRenderStrategy,
    RenderStrategy,
    get_render_strategy,
)
from .resolver import DEFAULT_FRESHNESS_WINDOW, TemplateResolver
from .sources import (
    TEMPLATE_PATHS,
    FileSystemTemplateSource,
    S3TemplateSource,
    TemplateSource,
    artifact_keys,
)

__all__ = [
    "TemplateResolver",
    "DEFAULT_FRESHNESS_WINDOW",
    "TemplateSource",
    "FileSystemTemplateSource",
    "S3TemplateSource",
    "TEMPLATE_PATHS",
    "artifact_keys",
    "RenderStrategy",
    "JinjaRenderStrategy",
    "PlaceholderRenderStrategy",
    "get_render_strategy",
    "RenderedContent",
    "TemplateError",
    "TemplateNotFoundError",
    "TemplateFetchError",
    "TemplateRenderError",
]
