"""Template resolution with a time-bounded in-process cache.

The resolver maps a notification type to its template bundle, fetching the
three artifacts concurrently from a TemplateSource and caching the complete
bundle for a freshness window (5 minutes by default). A bundle is committed
to the cache only when all three artifacts were fetched, so a partial
failure never replaces a previously cached bundle.
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Mapping, Optional

from notifier.domain.models import NotificationType, TemplateBundle
from notifier.logging import get_logger
from notifier.utils.concurrency import fan_out
from notifier.utils.timestamps import utc_now

from .models import RenderedContent, TemplateError, TemplateFetchError, TemplateNotFoundError
from .rendering import JinjaRenderStrategy, RenderStrategy
from .sources import TemplateSource, artifact_keys

logger = get_logger(__name__, component="templates")

DEFAULT_FRESHNESS_WINDOW = timedelta(minutes=5)


class TemplateResolver:
    """Fetches, caches and renders template bundles per notification type."""

    def __init__(
        self,
        source: TemplateSource,
        render_strategy: Optional[RenderStrategy] = None,
        freshness_window: timedelta = DEFAULT_FRESHNESS_WINDOW,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the resolver.

        Args:
            source: Blob store holding the template artifacts
            render_strategy: Strategy used by render() (Jinja2 if None)
            freshness_window: How long a fetched bundle may be served from cache
            clock: Returns the current UTC time; injectable for tests
        """
        self.source = source
        self.render_strategy = render_strategy or JinjaRenderStrategy()
        self.freshness_window = freshness_window
        self.clock = clock
        self._cache: Dict[NotificationType, TemplateBundle] = {}

    def get_template(self, notification_type: NotificationType) -> TemplateBundle:
        """Return the bundle for a type, from cache when still fresh.

        Raises:
            TemplateNotFoundError: If any artifact is missing or empty
            TemplateFetchError: If the store failed for any artifact
        """
        now = self.clock()
        cached = self._cache.get(notification_type)
        if cached is not None and cached.is_fresh(now, self.freshness_window):
            logger.debug(
                f"Template cache hit for {notification_type.value}",
                extra={"event": "template.cache.hit", "notification_type": notification_type.value},
            )
            return cached

        logger.debug(
            f"Template cache miss for {notification_type.value}",
            extra={"event": "template.cache.miss", "notification_type": notification_type.value},
        )

        keys = artifact_keys(notification_type)
        outcomes = fan_out(lambda item: self.source.fetch(item[1]), list(keys.items()), max_workers=3)

        failures = [outcome.error for outcome in outcomes if not outcome.ok]
        if failures:
            error = _pick_failure(failures)
            logger.error(
                f"Failed to fetch templates for {notification_type.value}: {error}",
                extra={
                    "event": "template.fetch.failed",
                    "notification_type": notification_type.value,
                    "source": self.source.describe(),
                },
            )
            raise error

        artifacts = {outcome.item[0]: outcome.value for outcome in outcomes}
        bundle = TemplateBundle(
            notification_type=notification_type,
            subject=artifacts["subject"],
            html=artifacts["html"],
            text=artifacts["text"],
            fetched_at=now,
        )
        self._cache[notification_type] = bundle

        logger.info(
            f"Templates loaded for {notification_type.value}",
            extra={"event": "template.fetch.completed", "notification_type": notification_type.value},
        )
        return bundle

    def render(self, bundle: TemplateBundle, variables: Mapping[str, Any]) -> RenderedContent:
        """Render a bundle with ``variables`` using the configured strategy.

        Raises:
            TemplateRenderError: If an artifact has malformed placeholder syntax
        """
        return self.render_strategy.render(bundle, variables)

    def invalidate(self, notification_type: NotificationType) -> None:
        """Drop the cached bundle for one type."""
        self._cache.pop(notification_type, None)

    def clear_cache(self) -> None:
        """Drop every cached bundle."""
        self._cache.clear()
        logger.info("Template cache cleared", extra={"event": "template.cache.cleared"})


def _pick_failure(failures) -> TemplateError:
    # Not-found takes precedence over transient fetch errors.
    for error in failures:
        if isinstance(error, TemplateNotFoundError):
            return error
    for error in failures:
        if isinstance(error, TemplateError):
            return error
    return TemplateFetchError(f"Failed to fetch templates: {failures[0]}")
