# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Document bodies written by the adapter."""

from dataclasses import dataclass
from typing import Any

from .payload_codec import EncryptedPayload


@dataclass(frozen=True)
class PlaintextBody:
    """Caller payload stored verbatim."""

    fields: dict[str, Any]

    def to_document(self) -> dict[str, Any]:
        return dict(self.fields)


@dataclass(frozen=True)
class EncryptedBody:
    """Encrypted payload stored next to the caller's cleartext index fields.

    The index fields are the only part of an encrypted document that can be
    queried.
    """

    index_fields: dict[str, Any]
    payload: EncryptedPayload

    def to_document(self) -> dict[str, Any]:
        document = dict(self.index_fields)
        document.update(self.payload.to_fields())
        return document


DocumentBody = PlaintextBody | EncryptedBody
