# This file is part of TxMeta.
#
# Licensed under MIT License.

"""Transcriptome registry: signature -> descriptor mapping."""

from .descriptor import TranscriptomeDescriptor  # noqa: F401
from .exchange import export_linked, import_linked, make_linked_txome  # noqa: F401
from .sources import make_descriptor  # noqa: F401
from .store import RegistryStore  # noqa: F401
