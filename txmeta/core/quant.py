# This file is part of TxMeta.
#
# Licensed under MIT License.

"""Sample tables and salmon quantification output."""

import logging as lg
import os

import pandas as pd

from ..errors import SampleTableError

QUANT_FILE = 'quant.sf'

QUANT_COLUMNS = ['Name', 'Length', 'EffectiveLength', 'TPM', 'NumReads']

# Run diagnostics copied from meta_info.json into quantInfo
QUANT_INFO_FIELDS = (
    'salmon_version', 'num_processed', 'num_mapped', 'percent_mapped', 'library_types',
    'frag_length_mean', 'frag_length_sd', 'start_time', 'end_time', 'num_bootstraps',
    'index_seq_hash', 'index_name_hash', 'index_decoy_seq_hash',
)


def quant_file(path):
    """Path of the quant table for a quant directory or file."""
    return os.path.join(path, QUANT_FILE) if os.path.isdir(path) else path


def read_coldata(coldata):
    """Load and validate a sample table.

    Args:
        coldata: DataFrame, or path to a tab- or comma-separated file with at
            least ``files`` and ``names`` columns.

    Returns:
        DataFrame indexed by sample name. Extra columns pass through.

    Raises:
        SampleTableError: The table is unreadable, lacks a required column,
            repeats a sample name, or names a missing quant file.
    """
    if isinstance(coldata, pd.DataFrame):
        df = coldata.copy()
        base = os.getcwd()
    else:
        path = str(coldata)
        sep = ',' if path.endswith('.csv') else '\t'
        try:
            df = pd.read_csv(path, sep=sep, dtype=str, keep_default_na=False)
        except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
            raise SampleTableError(f'Cannot read sample table {path}: {exc}') from exc
        base = os.path.dirname(os.path.abspath(path))

    missing = [c for c in ('files', 'names') if c not in df.columns]
    if missing:
        raise SampleTableError('Sample table is missing column(s): {}'.format(', '.join(missing)))
    if df.empty:
        raise SampleTableError('Sample table has no rows')
    df['names'] = df['names'].astype(str)
    dups = df['names'][df['names'].duplicated()].unique()
    if len(dups):
        raise SampleTableError('Duplicate sample names: {}'.format(', '.join(dups)))

    # Relative paths in a table file are relative to the table
    files = []
    for f in df['files'].astype(str):
        f = os.path.expanduser(f)
        files.append(f if os.path.isabs(f) else os.path.normpath(os.path.join(base, f)))
    df['files'] = files
    absent = [f for f in files if not os.path.exists(quant_file(f))]
    if absent:
        raise SampleTableError('Quantification file(s) not found: {}'.format(', '.join(absent)))
    df = df.set_index('names', drop=False)
    df.index.name = None
    return df


def read_quant(path):
    """Read a salmon ``quant.sf`` table.

    Returns:
        DataFrame indexed by transcript name with the remaining
        ``QUANT_COLUMNS``.
    """
    path = quant_file(path)
    try:
        df = pd.read_csv(path, sep='\t', dtype={'Name': str})
    except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise SampleTableError(f'Cannot read quantification file {path}: {exc}') from exc
    missing = [c for c in QUANT_COLUMNS if c not in df.columns]
    if missing:
        raise SampleTableError('{} is missing column(s): {}'.format(path, ', '.join(missing)))
    lg.debug(f'Read {len(df)} transcripts from {path}')
    return df[QUANT_COLUMNS].set_index('Name')


def quant_info(index_metadata):
    """Run diagnostics worth keeping from the index metadata."""
    return {k: index_metadata[k] for k in QUANT_INFO_FIELDS if k in index_metadata}
