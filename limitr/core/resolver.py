"""Configuration resolver: built-in defaults, global options, route overrides.

Merge rule:
- Scalars and callables replace the lower layer's value.
- Nested mappings (and nested option models) merge key by key, recursively.
- Lists replace wholesale; they are never concatenated.

Route patterns:
- ``/exact/path`` matches only that path and always wins.
- ``*`` matches every path.
- ``/prefix/*`` matches any path starting with ``/prefix/``.

Among ``*`` and prefix patterns, the first match in the override map's
insertion order is selected. This is positional, not longest-prefix.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ValidationError

from limitr.core.errors import ConfigurationAppError
from limitr.schemas.options import RateLimitOptions

GLOBAL_WILDCARD = "*"
PREFIX_WILDCARD_SUFFIX = "/*"

OptionsLike = RateLimitOptions | Mapping[str, Any]


def _as_partial(value: Any) -> Any:
    """Convert option models to plain dicts of explicitly set fields."""
    if isinstance(value, BaseModel):
        return {name: _as_partial(getattr(value, name)) for name in value.model_fields_set}
    if isinstance(value, Mapping):
        return {key: _as_partial(item) for key, item in value.items()}
    return value


def _as_layer(options: RateLimitOptions) -> dict[str, Any]:
    """Expand a full options model into a merge layer (every top-level field)."""
    return {
        name: _as_partial(getattr(options, name))
        for name in type(options).model_fields
    }


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Merge ``override`` onto ``base`` without mutating either.

    Args:
        base: Lower layer.
        override: Higher layer; its values win.

    Returns:
        A new dict with nested mappings merged recursively.
    """
    merged: dict[str, Any] = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def _validate(layer: Mapping[str, Any], *, source: str) -> RateLimitOptions:
    try:
        return RateLimitOptions.model_validate(layer)
    except ValidationError as exc:
        raise ConfigurationAppError(
            code="invalid_options",
            message=f"Invalid rate limit options ({source}): {exc.error_count()} error(s)",
            details={"hint": str(exc), "context": {"source": source}},
        ) from exc


def merge_options(base: RateLimitOptions, override: OptionsLike | None) -> RateLimitOptions:
    """Apply a partial ``override`` on top of complete ``base`` options."""
    if override is None:
        return base
    return _validate(deep_merge(_as_layer(base), _as_partial(override)), source="override")


def build_options(options: OptionsLike | None = None) -> RateLimitOptions:
    """Merge caller global options onto the built-in defaults.

    Raises:
        ConfigurationAppError: If a value is invalid or a key is unknown.
    """
    return _validate(
        deep_merge(_as_layer(RateLimitOptions()), _as_partial(options or {})),
        source="global",
    )


def select_route_override(
    overrides: Mapping[str, OptionsLike] | None, path: str
) -> OptionsLike | None:
    """Pick the single override that applies to ``path``.

    Args:
        overrides: Ordered pattern -> partial options map.
        path: Request path.

    Returns:
        The selected partial options, or None when nothing matches.
    """
    if not overrides:
        return None

    if path in overrides:
        return overrides[path]

    for pattern, override in overrides.items():
        if pattern == GLOBAL_WILDCARD:
            return override
        if pattern.endswith(PREFIX_WILDCARD_SUFFIX) and path.startswith(pattern[:-1]):
            return override

    return None


def resolve_options(
    global_options: RateLimitOptions,
    overrides: Mapping[str, OptionsLike] | None,
    path: str,
) -> RateLimitOptions:
    """Return the effective options for a request path.

    Args:
        global_options: Options already merged onto defaults (see build_options).
        overrides: Route override map.
        path: Request path.

    Returns:
        ``global_options`` itself when no override matches, else a merged copy.
    """
    return merge_options(global_options, select_route_override(overrides, path))


# The storage adapter is built once from the global options, so these fields
# cannot vary per route.
STORAGE_FIELDS = frozenset(
    {
        "storage",
        "redis_config",
        "redis_client",
        "mongo_config",
        "mongo_client",
        "postgres_config",
        "postgres_client",
        "edge_config",
    }
)


def validate_route_override(
    base: RateLimitOptions, pattern: str, override: OptionsLike
) -> RateLimitOptions:
    """Validate one route override against the global options.

    Raises:
        ConfigurationAppError: If the override sets storage fields or holds
            invalid values.
    """
    layer = _as_partial(override)
    storage_keys = sorted(STORAGE_FIELDS.intersection(layer))
    if storage_keys:
        raise ConfigurationAppError(
            code="route_override_storage",
            message=(
                f"Route override '{pattern}' sets storage fields {storage_keys}; "
                "storage can only be configured globally"
            ),
            details={"context": {"pattern": pattern, "fields": storage_keys}},
        )
    return merge_options(base, override)
