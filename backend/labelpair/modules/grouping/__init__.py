# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — Grouping Module
Public API for product assembly: extras attachment and singleton resolution.
"""

from labelpair.modules.grouping.extras_resolver import (
    group_extras,
    make_product_id,
    score_extra,
)
from labelpair.modules.grouping.singleton_resolver import (
    DEFAULT_SINGLETON_REASON,
    resolve_singletons,
)

__all__ = [
    # Extras
    "group_extras",
    "score_extra",
    "make_product_id",
    # Singletons
    "resolve_singletons",
    "DEFAULT_SINGLETON_REASON",
]
