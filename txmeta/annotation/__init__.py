# This file is part of TxMeta.
#
# Licensed under MIT License.

from ..errors import ParseError
from .txdb import CoverageGap, GeneDB, TranscriptDB  # noqa: F401


def get_reader(file_format, path=''):
    """Get the annotation reader for a file format.

    Args:
        file_format (str): ``gtf`` or ``gff3``.
        path (str): File the reader is wanted for, named in the error.

    Returns:
        Function taking a path and returning a TranscriptDB.

    Raises:
        ParseError: The format is not one of the supported ones.
    """
    if file_format == 'gtf':
        from .gtf import read_gtf

        return read_gtf
    elif file_format in ('gff3', 'gff'):
        from .gtf import read_gff3

        return read_gff3
    else:
        raise ParseError(path, f'unknown annotation format "{file_format}"; use "gtf" or "gff3"')


def read_annotation(path, file_format=None):
    """Parse an annotation file, detecting its format when not given."""
    from .gtf import detect_format

    return get_reader(file_format or detect_format(path), path)(path)
