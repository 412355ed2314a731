"""Ruleset fragment sources: in-memory, YAML directory, and Redis."""

from __future__ import annotations

import json
import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Protocol

import yaml
from redis import Redis
from redis.exceptions import RedisError

from metadata_audit.config import Settings, settings
from metadata_audit.core.exceptions import FragmentStoreError, RulesetConfigurationError
from metadata_audit.services.ruleset.types import RuleSetFragment, Scope

logger = logging.getLogger(__name__)

BASE_RULESET_PATH = Path(__file__).resolve().parent.parent / "data" / "base_ruleset.yaml"
DEFAULT_SELECTOR = "default"

_SELECTOR_RE = re.compile(r"^[\w.&-]+$")


class FragmentStore(Protocol):
    """Source of per-scope ruleset fragments."""

    name: str

    def load_fragment(self, scope: Scope, selector: str | None) -> RuleSetFragment | None:
        """Return the fragment for ``scope``/``selector`` or None when absent."""
        ...


def parse_fragment(payload: Any, scope: Scope, selector: str | None) -> RuleSetFragment:
    """Validate a raw payload into a fragment.

    Raises:
        RulesetConfigurationError: if the payload is malformed.
    """
    try:
        return RuleSetFragment.from_dict(payload, scope)
    except ValueError as exc:
        raise RulesetConfigurationError(scope.value, selector, str(exc)) from exc


@lru_cache
def load_builtin_base() -> RuleSetFragment:
    """Base ruleset shipped with the package."""
    with BASE_RULESET_PATH.open(encoding="utf-8") as handle:
        payload = yaml.safe_load(handle)
    return parse_fragment(payload, Scope.BASE, DEFAULT_SELECTOR)


def _selector_key(selector: str | None) -> str | None:
    """Normalize a selector into a storage key, rejecting path-like values."""
    value = (selector or DEFAULT_SELECTOR).strip().lower().replace(" ", "_")
    if not value or not _SELECTOR_RE.match(value) or value.startswith("."):
        return None
    return value


class InMemoryFragmentStore:
    """Fragments held in a dict; used for tests and the built-in mode."""

    name = "memory"

    def __init__(
        self,
        fragments: dict[tuple[Scope, str | None], RuleSetFragment | dict[str, Any]] | None = None,
    ) -> None:
        self._fragments: dict[tuple[Scope, str], RuleSetFragment] = {}
        for (scope, selector), fragment in (fragments or {}).items():
            self.put(scope, selector, fragment)

    def put(
        self,
        scope: Scope,
        selector: str | None,
        fragment: RuleSetFragment | dict[str, Any],
    ) -> None:
        key = _selector_key(selector)
        if key is None:
            raise ValueError(f"invalid selector {selector!r}")
        if not isinstance(fragment, RuleSetFragment):
            fragment = parse_fragment(fragment, scope, selector)
        self._fragments[(scope, key)] = fragment

    def load_fragment(self, scope: Scope, selector: str | None) -> RuleSetFragment | None:
        key = _selector_key(selector)
        if key is None:
            return None
        return self._fragments.get((scope, key))


class YamlFragmentStore:
    """Fragments stored as ``<directory>/<scope>/<selector>.yaml``."""

    name = "yaml"

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def path_for(self, scope: Scope, selector: str | None) -> Path | None:
        key = _selector_key(selector)
        if key is None:
            return None
        return self.directory / scope.value / f"{key}.yaml"

    def load_fragment(self, scope: Scope, selector: str | None) -> RuleSetFragment | None:
        path = self.path_for(scope, selector)
        if path is None or not path.is_file():
            return None
        try:
            with path.open(encoding="utf-8") as handle:
                payload = yaml.safe_load(handle)
        except yaml.YAMLError as exc:
            raise RulesetConfigurationError(scope.value, selector, f"invalid YAML: {exc}") from exc
        except OSError as exc:
            raise FragmentStoreError(self.name, f"cannot read {path}: {exc}") from exc

        if payload is None:
            return None
        logger.debug(
            "Loaded ruleset fragment",
            extra={"store": self.name, "scope": scope.value, "selector": selector, "path": str(path)},
        )
        return parse_fragment(payload, scope, selector)


class RedisFragmentStore:
    """Fragments stored as JSON strings under ``<prefix>:<scope>:<selector>``."""

    name = "redis"

    def __init__(self, client: Redis, *, prefix: str = "aso_ruleset") -> None:
        self._client = client
        self.prefix = prefix

    def key_for(self, scope: Scope, selector: str | None) -> str | None:
        key = _selector_key(selector)
        if key is None:
            return None
        return f"{self.prefix}:{scope.value}:{key}"

    def load_fragment(self, scope: Scope, selector: str | None) -> RuleSetFragment | None:
        key = self.key_for(scope, selector)
        if key is None:
            return None
        try:
            raw = self._client.get(key)
        except RedisError as exc:
            raise FragmentStoreError(self.name, f"cannot read {key}: {exc}") from exc
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            payload = json.loads(str(raw))
        except json.JSONDecodeError as exc:
            raise RulesetConfigurationError(scope.value, selector, f"invalid JSON: {exc}") from exc
        return parse_fragment(payload, scope, selector)


def build_fragment_store(app_settings: Settings | None = None) -> FragmentStore:
    """Create the fragment store selected by settings."""
    app_settings = app_settings or settings
    if app_settings.fragment_store == "yaml":
        return YamlFragmentStore(app_settings.fragment_directory)
    if app_settings.fragment_store == "redis":
        client = Redis.from_url(app_settings.redis_url, decode_responses=True)
        return RedisFragmentStore(client, prefix=app_settings.fragment_redis_prefix)
    return InMemoryFragmentStore()
