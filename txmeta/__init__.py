# -*- coding: utf-8 -*-

# This file is part of TxMeta.
#
# Licensed under MIT License.

"""Transcriptome provenance for salmon quantifications.

Samples are matched to a reference transcriptome by the sequence digest
salmon embeds in its index. Digests are looked up in a curated baseline
table and in the linked transcriptomes registered under the cache root.

The bundled baseline (``txmeta/data/hashtable.csv``) ships empty. Point
``TXMETA_HASHTABLE`` at a populated table, or register transcriptomes with
``txmeta link`` / ``make_linked_txome``, before importing.
"""

__version__ = '1.0.0'
