# This file is part of TxMeta.
#
# Licensed under MIT License.

"""Fetch-and-parse pipeline."""

from .materialize import MaterializeResult, gene_database, materialize  # noqa: F401
