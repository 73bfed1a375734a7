# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Mapping of logical collection names to physical collection paths."""


class CollectionPathResolver:
    """Prepends a fixed prefix to every logical collection name.

    Examples:
        ``"ltijs-"`` resolves ``accesstoken`` to ``ltijs-accesstoken``.
        ``"ltijs/index/"`` resolves ``accesstoken`` to ``ltijs/index/accesstoken``.
    """

    def __init__(self, prefix: str = ""):
        self.prefix = prefix or ""

    def resolve(self, collection: str) -> str:
        return self.prefix + collection

    def __call__(self, collection: str) -> str:
        return self.resolve(collection)
