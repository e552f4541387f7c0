"""
Normalizer configuration resolved from explicit overrides, environment variables and defaults.
"""

import os
from dataclasses import dataclass, field
from typing import Any, FrozenSet, Optional

from dotenv import load_dotenv

from pdf_tag_normalizer.pdf_structure_standards import DEFAULT_GROUPING_ROLES, parse_role_list

MAX_PASSES_ENV = "TAG_NORMALIZER_MAX_PASSES"
VERIFY_TREE_ENV = "TAG_NORMALIZER_VERIFY_TREE"
MARK_WARNINGS_ENV = "TAG_NORMALIZER_MARK_WARNINGS"
SINGLE_TITLE_HEADING_ENV = "TAG_NORMALIZER_SINGLE_TITLE_HEADING"
GROUPING_ROLES_ENV = "TAG_NORMALIZER_GROUPING_ROLES"

DEFAULT_MAX_PASSES = 8

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _parse_positive_int(value: Any) -> Optional[int]:
    """Return value as positive int if possible; otherwise None."""
    if value is None:
        return None

    try:
        number = int(value)
    except (TypeError, ValueError):
        return None

    return number if number > 0 else None


def _parse_bool(value: Any) -> Optional[bool]:
    """Return value as bool for the usual truthy/falsy spellings; otherwise None."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    return None


@dataclass
class NormalizerConfig:
    """Tunables for one normalization run."""

    max_passes: int = DEFAULT_MAX_PASSES
    verify_tree: bool = True
    mark_warnings: bool = True
    single_title_heading: bool = False
    grouping_roles: FrozenSet[str] = field(default_factory=lambda: DEFAULT_GROUPING_ROLES)

    @classmethod
    def from_env(cls, **overrides) -> "NormalizerConfig":
        """Resolve configuration.

        Order of precedence:
        1. Explicit keyword override (if valid)
        2. TAG_NORMALIZER_* env var (a .env file is honoured)
        3. Built-in default
        """
        load_dotenv()

        def pick(name, env_name, parser, default):
            value = parser(overrides.get(name))
            if value is not None:
                return value
            value = parser(os.getenv(env_name))
            return default if value is None else value

        grouping_override = overrides.get("grouping_roles")
        if grouping_override is not None and not isinstance(grouping_override, str):
            grouping_override = ",".join(grouping_override)

        grouping_roles = parse_role_list(grouping_override)
        if grouping_roles is None:
            grouping_roles = parse_role_list(os.getenv(GROUPING_ROLES_ENV)) or DEFAULT_GROUPING_ROLES

        return cls(
            max_passes=pick("max_passes", MAX_PASSES_ENV, _parse_positive_int, DEFAULT_MAX_PASSES),
            verify_tree=pick("verify_tree", VERIFY_TREE_ENV, _parse_bool, True),
            mark_warnings=pick("mark_warnings", MARK_WARNINGS_ENV, _parse_bool, True),
            single_title_heading=pick("single_title_heading", SINGLE_TITLE_HEADING_ENV, _parse_bool, False),
            grouping_roles=grouping_roles,
        )
