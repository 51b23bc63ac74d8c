"""Variant configuration and matrix expansion.

Usage:
    from kiln.variants import VariantConfig, expand, used_variant_keys

    config = VariantConfig.from_yaml(text, lookup=platforms.facts())
    keys = used_variant_keys(raw_recipe, context, config, facts=platforms.facts())
    for combination in expand(keys, config):
        ...
"""

from __future__ import annotations

from kiln.variants.config import ZIP_KEYS, VariantConfig
from kiln.variants.expander import (
    PINNED_SECTIONS,
    VariantCombination,
    apply_variant_pins,
    expand,
    used_variant_keys,
)

__all__ = [
    "PINNED_SECTIONS",
    "ZIP_KEYS",
    "VariantCombination",
    "VariantConfig",
    "apply_variant_pins",
    "expand",
    "used_variant_keys",
]
