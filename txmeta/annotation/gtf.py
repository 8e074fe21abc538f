# This file is part of TxMeta.
#
# Licensed under MIT License.

"""GTF and GFF3 readers producing a :class:`TranscriptDB`.

Both readers accept plain or gzip-compressed files.
"""

import gzip
import logging as lg
import re
from collections import OrderedDict, namedtuple

from ..errors import ParseError
from .txdb import Exon, Gene, Transcript, TranscriptDB

GTFRow = namedtuple('GTFRow', ['chrom', 'source', 'feature', 'start', 'end', 'score', 'strand', 'frame', 'attribute'])

# Lines inspected when sniffing the format
SNIFF_LINES = 1000

_SEQREGION_RE = re.compile(r'^##sequence-region\s+(\S+)\s+(\d+)\s+(\d+)')


def open_annotation(path):
    """Open *path* for text reading, transparently handling gzip."""
    with open(path, 'rb') as fh:
        magic = fh.read(2)
    if magic == b'\x1f\x8b':
        return gzip.open(path, 'rt')
    return open(path)


def parse_gtf_attributes(attr_str):
    """Parse a GTF attribute column (``key "value"; key value;``)."""
    attrs = {}
    for field in attr_str.strip().rstrip(';').split(';'):
        field = field.strip()
        if not field:
            continue
        parts = field.split(None, 1)
        if len(parts) == 2:
            attrs[parts[0]] = parts[1].strip().strip('"')
    return attrs


def parse_gff3_attributes(attr_str):
    """Parse a GFF3 attribute column (``key=value;key=v1,v2``)."""
    attrs = {}
    for field in attr_str.strip().rstrip(';').split(';'):
        if '=' not in field:
            continue
        key, val = field.split('=', 1)
        attrs[key.strip()] = val.strip()
    return attrs


def detect_format(path):
    """Return ``'gtf'`` or ``'gff3'`` by inspecting the file contents.

    Raises:
        ParseError: No annotation record was found.
    """
    try:
        fh = open_annotation(path)
        with fh:
            for n, line in enumerate(fh):
                if n >= SNIFF_LINES:
                    break
                if line.startswith('##gff-version'):
                    tokens = line.split()
                    if len(tokens) > 1 and tokens[1].startswith('3'):
                        return 'gff3'
                if line.startswith('#') or not line.strip():
                    continue
                parts = line.rstrip('\n').split('\t')
                if len(parts) != 9:
                    break
                if '=' in parts[8] and '"' not in parts[8]:
                    return 'gff3'
                return 'gtf'
    except (OSError, UnicodeDecodeError, EOFError) as exc:
        raise ParseError(path, str(exc)) from exc
    raise ParseError(path, 'not a GTF or GFF3 file')


def _split_row(path, rownum, line):
    parts = line.rstrip('\n').split('\t')
    if len(parts) != 9:
        raise ParseError(path, f'line {rownum + 1} has {len(parts)} columns, expected 9')
    f = GTFRow(*parts)
    try:
        start, end = int(f.start), int(f.end)
    except ValueError as exc:
        raise ParseError(path, f'line {rownum + 1} has non-integer coordinates') from exc
    return f, start, end


def _finish(path, file_format, tx_rows, exon_rows, gene_rows, seqlengths):
    """Assemble a TranscriptDB from collected rows.

    Transcript and gene bounds fall back to the extent of their exons when
    the file has no explicit transcript or gene records.
    """
    if not exon_rows and not tx_rows:
        raise ParseError(path, 'no transcript or exon records found')
    exons = {}
    for tx_id, ex in exon_rows:
        exons.setdefault(tx_id, []).append(ex)
    for tx_id, lst in exons.items():
        # Unranked exons are ordered along the transcript
        if any(e.exon_rank is None for e in lst):
            strand = tx_rows.get(tx_id, {}).get('strand', '+')
            lst.sort(key=lambda e: e.start, reverse=(strand == '-'))
            lst[:] = [e._replace(exon_rank=i + 1) for i, e in enumerate(lst)]
        else:
            lst.sort(key=lambda e: e.exon_rank)

    transcripts = OrderedDict()
    for tx_id, info in tx_rows.items():
        tx_exons = exons.get(tx_id, [])
        start = info['start'] if info.get('start') is not None else min(e.start for e in tx_exons)
        end = info['end'] if info.get('end') is not None else max(e.end for e in tx_exons)
        transcripts[tx_id] = Transcript(
            tx_id=tx_id,
            tx_name=info.get('tx_name', ''),
            gene_id=info.get('gene_id', ''),
            seqnames=info['seqnames'],
            start=start,
            end=end,
            strand=info['strand'],
            tx_biotype=info.get('tx_biotype', ''),
            version=info.get('version', ''),
        )

    genes = OrderedDict()
    for gene_id, info in gene_rows.items():
        genes[gene_id] = Gene(gene_id, info.get('gene_name', ''), info['seqnames'], info['start'], info['end'],
                              info['strand'], info.get('gene_biotype', ''))
    by_gene = OrderedDict()
    for tx in transcripts.values():
        if tx.gene_id and tx.gene_id not in genes:
            by_gene.setdefault(tx.gene_id, []).append(tx)
    for gene_id, txs in by_gene.items():
        genes[gene_id] = Gene(gene_id, '', txs[0].seqnames, min(t.start for t in txs), max(t.end for t in txs),
                              txs[0].strand, '')

    lg.info(f'Parsed {len(transcripts)} transcripts in {len(genes)} genes from {path}')
    return TranscriptDB(transcripts, exons, genes, seqlengths, source_file=str(path), file_format=file_format)


def read_gtf(path):
    """Parse a GTF file.

    Raises:
        ParseError: A record is malformed or no transcripts were found.
    """
    tx_rows = OrderedDict()
    exon_rows = []
    gene_rows = OrderedDict()
    with open_annotation(path) as fh:
        try:
            for rownum, line in enumerate(fh):
                if line.startswith('#') or not line.strip():
                    continue
                f, start, end = _split_row(path, rownum, line)
                attr = parse_gtf_attributes(f.attribute)
                if f.feature == 'gene':
                    gene_id = attr.get('gene_id')
                    if gene_id:
                        gene_rows[gene_id] = {
                            'gene_name': attr.get('gene_name', ''), 'seqnames': f.chrom, 'start': start,
                            'end': end, 'strand': f.strand,
                            'gene_biotype': attr.get('gene_biotype', attr.get('gene_type', '')),
                        }
                    continue
                if f.feature not in ('transcript', 'exon'):
                    continue
                tx_id = attr.get('transcript_id')
                if not tx_id:
                    lg.warning(f'Skipping row {rownum}: missing attribute "transcript_id"')
                    continue
                info = tx_rows.setdefault(tx_id, {'seqnames': f.chrom, 'strand': f.strand})
                info.setdefault('gene_id', attr.get('gene_id', ''))
                if 'transcript_name' in attr:
                    info['tx_name'] = attr['transcript_name']
                biotype = attr.get('transcript_biotype', attr.get('transcript_type'))
                if biotype:
                    info['tx_biotype'] = biotype
                if 'transcript_version' in attr:
                    info['version'] = attr['transcript_version']
                if f.feature == 'transcript':
                    info['start'], info['end'] = start, end
                else:
                    rank = attr.get('exon_number')
                    exon_rows.append((tx_id, Exon(start, end, attr.get('exon_id', ''),
                                                  int(rank) if rank and rank.isdigit() else None)))
        except (UnicodeDecodeError, OSError, EOFError) as exc:
            raise ParseError(path, str(exc)) from exc
    return _finish(path, 'gtf', tx_rows, exon_rows, gene_rows, {})


def _strip_prefix(value):
    # Ensembl GFF3 IDs carry a type prefix, e.g. "transcript:ENST00000..."
    return value.split(':', 1)[1] if ':' in value else value


def read_gff3(path):
    """Parse a GFF3 file.

    Transcripts are the features that are parents of exons; genes are the
    parents of transcripts.

    Raises:
        ParseError: A record is malformed or no transcripts were found.
    """
    features = {}
    exon_parents = []
    seqlengths = {}
    with open_annotation(path) as fh:
        try:
            for rownum, line in enumerate(fh):
                if line.startswith('##'):
                    m = _SEQREGION_RE.match(line)
                    if m:
                        seqlengths[m.group(1)] = int(m.group(3))
                    if line.startswith('##FASTA'):
                        break
                    continue
                if line.startswith('#') or not line.strip():
                    continue
                f, start, end = _split_row(path, rownum, line)
                attr = parse_gff3_attributes(f.attribute)
                parents = [p for p in attr.get('Parent', '').split(',') if p]
                if f.feature == 'exon':
                    for p in parents:
                        exon_parents.append((p, f, start, end, attr))
                    continue
                if 'ID' in attr:
                    features[attr['ID']] = (f, start, end, attr, parents)
        except (UnicodeDecodeError, OSError, EOFError) as exc:
            raise ParseError(path, str(exc)) from exc

    tx_rows = OrderedDict()
    exon_rows = []
    gene_rows = OrderedDict()
    tx_key = {}
    for parent_id, f, start, end, attr in exon_parents:
        if parent_id not in tx_key:
            if parent_id in features:
                pf, pstart, pend, pattr, gparents = features[parent_id]
                tx_id = pattr.get('transcript_id', _strip_prefix(parent_id))
                info = {'seqnames': pf.chrom, 'strand': pf.strand, 'start': pstart, 'end': pend,
                        'tx_name': pattr.get('Name', ''),
                        'tx_biotype': pattr.get('biotype', pattr.get('transcript_type', pf.feature)),
                        'version': pattr.get('version', '')}
                if gparents and gparents[0] in features:
                    gf, gstart, gend, gattr, _ = features[gparents[0]]
                    gene_id = gattr.get('gene_id', _strip_prefix(gparents[0]))
                    info['gene_id'] = gene_id
                    gene_rows.setdefault(gene_id, {
                        'gene_name': gattr.get('Name', gattr.get('gene_name', '')), 'seqnames': gf.chrom,
                        'start': gstart, 'end': gend, 'strand': gf.strand,
                        'gene_biotype': gattr.get('biotype', gattr.get('gene_type', '')),
                    })
                else:
                    info['gene_id'] = pattr.get('gene_id', _strip_prefix(gparents[0]) if gparents else '')
            else:
                tx_id = _strip_prefix(parent_id)
                info = {'seqnames': f.chrom, 'strand': f.strand, 'gene_id': attr.get('gene_id', '')}
            tx_key[parent_id] = tx_id
            tx_rows[tx_id] = info
        rank = attr.get('rank', attr.get('exon_number'))
        exon_rows.append((tx_key[parent_id], Exon(start, end, _strip_prefix(attr.get('exon_id', attr.get('ID', ''))),
                                                  int(rank) if rank and rank.isdigit() else None)))
    return _finish(path, 'gff3', tx_rows, exon_rows, gene_rows, seqlengths)
