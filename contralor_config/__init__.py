"""
contralor_config -- single public entrypoint for regulatory configuration.

Responsibility:
    Provides the only way to obtain the regulatory rules at runtime through
    ``get_active_config()``.  Returns the kernel's ``RegulatoryRules``; YAML
    loading is internal.

Architecture position:
    Configuration -- sits above ``contralor_kernel``.  The kernel never
    imports from this package.

Failure modes:
    - ``FileNotFoundError`` -- the requested rule set file does not exist.
    - ``ConfigError`` -- structural problems in the rule set.

Audit relevance:
    Every activation emits a ``CONTRALOR_CONFIG_TRACE`` log entry with the
    config_id, version and checksum of the rules that were loaded.
"""

from __future__ import annotations

import logging
from pathlib import Path

from contralor_config.bridges import build_regulatory_rules
from contralor_config.loader import ConfigError, load_rule_set
from contralor_config.schema import RuleSet
from contralor_kernel.domain.rules import RegulatoryRules

__all__ = [
    "ConfigError",
    "RuleSet",
    "get_active_config",
    "get_active_rule_set",
    "clear_config_cache",
]

_logger = logging.getLogger("contralor_kernel.config")

_DEFAULT_RULE_SET = Path(__file__).parent / "sets" / "dicose-uy.yaml"

_cache: dict[Path, tuple[RuleSet, RegulatoryRules]] = {}


def _load(path: Path) -> tuple[RuleSet, RegulatoryRules]:
    resolved = path.resolve()
    if resolved not in _cache:
        rule_set = load_rule_set(resolved)
        rules = build_regulatory_rules(rule_set)
        _cache[resolved] = (rule_set, rules)
        _logger.info(
            "CONTRALOR_CONFIG_TRACE",
            extra={
                "config_id": rule_set.config_id,
                "version": rule_set.version,
                "checksum": rule_set.checksum,
                "effective_from": rule_set.effective_from.isoformat(),
            },
        )
    return _cache[resolved]


def get_active_config(path: Path | str | None = None) -> RegulatoryRules:
    """Return the regulatory rules from ``path`` or the bundled DICOSE set."""
    return _load(Path(path) if path else _DEFAULT_RULE_SET)[1]


def get_active_rule_set(path: Path | str | None = None) -> RuleSet:
    """Return the parsed rule set (with its identity and checksum)."""
    return _load(Path(path) if path else _DEFAULT_RULE_SET)[0]


def clear_config_cache() -> None:
    """Drop cached rule sets. FOR TESTING ONLY."""
    _cache.clear()
