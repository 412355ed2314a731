"""Unit tests for ruleset resolution per app context."""

from metadata_audit.config import Settings
from metadata_audit.integrations.fragment_store import InMemoryFragmentStore
from metadata_audit.services.ruleset.cache import RulesetCache
from metadata_audit.services.ruleset.resolver import RulesetResolver
from metadata_audit.services.ruleset.selectors import resolve_market, resolve_vertical
from metadata_audit.services.ruleset.types import RuleSetFragment, RulesetContext, Scope


class _CountingStore:
    name = "counting"

    def __init__(self, inner: InMemoryFragmentStore) -> None:
        self.inner = inner
        self.calls: list[tuple[Scope, str | None]] = []

    def load_fragment(self, scope: Scope, selector: str | None) -> RuleSetFragment | None:
        self.calls.append((scope, selector))
        return self.inner.load_fragment(scope, selector)


def _context(**overrides: str) -> RulesetContext:
    values = {
        "locale": "en-US",
        "app_id": "app-1",
        "category": "Education",
        "organization_id": "org-1",
    }
    values.update(overrides)
    return RulesetContext(**values)


def test_selectors_resolve_every_scope() -> None:
    assert RulesetResolver().selectors(_context()) == [
        (Scope.BASE, None),
        (Scope.VERTICAL, "language_learning"),
        (Scope.MARKET, "us"),
        (Scope.CLIENT, "org-1"),
        (Scope.APP, "app-1"),
    ]


def test_pinned_vertical_overrides_category() -> None:
    selectors = dict(RulesetResolver().selectors(_context(vertical="finance")))

    assert selectors[Scope.VERTICAL] == "finance"


def test_category_and_locale_mapping() -> None:
    assert resolve_vertical("Health & Fitness") == "health"
    assert resolve_vertical("Weather") is None
    assert resolve_vertical(None) is None
    assert resolve_market("pt_BR") == "br"
    assert resolve_market("de") == "de"
    assert resolve_market("") is None


def test_resolve_merges_stored_fragments_over_builtin_base() -> None:
    store = InMemoryFragmentStore({
        (Scope.VERTICAL, "language_learning"): {"id": "edu-v1", "stopwords": ["app"]},
        (Scope.APP, "app-1"): {"id": "duo", "kpi_weights": {"title_intent_alignment": 1.5}},
    })

    ruleset = RulesetResolver(store).resolve(_context())

    assert "app" in ruleset.stopwords
    assert ruleset.vertical == "language_learning"
    assert ruleset.market == "us"
    assert ruleset.inheritance_chain["stopwords"] is Scope.VERTICAL
    assert ruleset.inheritance_chain["kpi_weights"] is Scope.APP
    assert ruleset.scope_sources[Scope.BASE] == "base-v1"
    assert ruleset.scope_sources[Scope.VERTICAL] == "edu-v1"
    assert ruleset.scope_sources[Scope.CLIENT] is None


def test_stored_base_fragment_replaces_builtin() -> None:
    store = InMemoryFragmentStore({
        (Scope.BASE, None): {"id": "custom-base", "stopwords": ["only"]},
    })

    ruleset = RulesetResolver(store).resolve(_context())

    assert ruleset.scope_sources[Scope.BASE] == "custom-base"
    assert ruleset.stopwords == ("only",)


def test_cached_resolution_loads_once_per_context() -> None:
    store = _CountingStore(InMemoryFragmentStore())
    resolver = RulesetResolver(store, cache=RulesetCache(60))

    first = resolver.resolve(_context())
    second = resolver.resolve(_context())
    resolver.resolve(_context(organization_id="org-2"))

    assert first is second
    assert len(store.calls) == 10


def test_from_settings_respects_cache_toggle() -> None:
    store = InMemoryFragmentStore()

    cached = RulesetResolver.from_settings(store, Settings(ruleset_cache_ttl_seconds=120))
    uncached = RulesetResolver.from_settings(store, Settings(ruleset_cache_enabled=False))

    assert cached.cache is not None
    assert cached.cache.ttl_seconds == 120
    assert uncached.cache is None
