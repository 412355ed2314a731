"""Resolve the merged ruleset for an app context."""

from __future__ import annotations

import logging

from metadata_audit.config import Settings, settings
from metadata_audit.integrations.fragment_store import (
    FragmentStore,
    InMemoryFragmentStore,
    load_builtin_base,
)
from metadata_audit.services.ruleset.cache import RulesetCache
from metadata_audit.services.ruleset.merger import merge_fragments
from metadata_audit.services.ruleset.selectors import resolve_market, resolve_vertical
from metadata_audit.services.ruleset.types import (
    MergedRuleSet,
    RuleSetFragment,
    RulesetContext,
    Scope,
    ScopedFragment,
)

logger = logging.getLogger(__name__)


class RulesetResolver:
    """Loads the five scope fragments for a context and merges them.

    The base fragment comes from the store when it has one, otherwise from the
    ruleset bundled with the package. Results are memoized per context when a
    cache is supplied.
    """

    def __init__(
        self,
        store: FragmentStore | None = None,
        *,
        cache: RulesetCache[MergedRuleSet] | None = None,
        base_fragment: RuleSetFragment | None = None,
    ) -> None:
        self.store = store or InMemoryFragmentStore()
        self.cache = cache
        self._base_fragment = base_fragment

    @classmethod
    def from_settings(
        cls,
        store: FragmentStore,
        app_settings: Settings | None = None,
    ) -> RulesetResolver:
        app_settings = app_settings or settings
        cache: RulesetCache[MergedRuleSet] | None = None
        if app_settings.ruleset_cache_enabled:
            cache = RulesetCache(app_settings.ruleset_cache_ttl_seconds)
        return cls(store, cache=cache)

    def selectors(self, context: RulesetContext) -> list[tuple[Scope, str | None]]:
        """Selector per scope, in merge order. None means the scope is skipped."""
        return [
            (Scope.BASE, None),
            (Scope.VERTICAL, context.vertical or resolve_vertical(context.category)),
            (Scope.MARKET, resolve_market(context.locale)),
            (Scope.CLIENT, context.organization_id),
            (Scope.APP, context.app_id),
        ]

    def load_fragments(self, context: RulesetContext) -> list[ScopedFragment]:
        fragments: list[ScopedFragment] = []
        for scope, selector in self.selectors(context):
            if scope is Scope.BASE:
                fragment = (
                    self._base_fragment
                    or self.store.load_fragment(Scope.BASE, None)
                    or load_builtin_base()
                )
                fragments.append(ScopedFragment(scope=scope, fragment=fragment, selector=None))
                continue
            if not selector:
                continue
            fragment = self.store.load_fragment(scope, selector)
            if fragment is not None:
                fragments.append(ScopedFragment(scope=scope, fragment=fragment, selector=selector))
        return fragments

    def _resolve_uncached(self, context: RulesetContext) -> MergedRuleSet:
        vertical = context.vertical or resolve_vertical(context.category)
        market = resolve_market(context.locale)
        fragments = self.load_fragments(context)
        logger.info(
            "Resolving ruleset",
            extra={
                "store": getattr(self.store, "name", type(self.store).__name__),
                "cache_key": list(context.cache_key),
                "scopes": [scoped.scope.value for scoped in fragments],
            },
        )
        return merge_fragments(
            fragments,
            vertical=vertical,
            market=market,
            category=context.category,
        )

    def resolve(self, context: RulesetContext) -> MergedRuleSet:
        """Return the merged ruleset for ``context``."""
        if self.cache is None:
            return self._resolve_uncached(context)
        return self.cache.get_or_load(context.cache_key, lambda: self._resolve_uncached(context))
