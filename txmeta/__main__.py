#! /usr/bin/env python
# -*- coding: utf-8 -*-

# This file is part of TxMeta.
#
# Licensed under MIT License.

""" Main functionality of TxMeta

"""
import sys
import argparse

from txmeta import __version__
from .cli import quant as cli_quant
from .cli import registry as cli_registry


USAGE = ''' %(prog)s <command> [<args>]

The most commonly used commands are:
   import         Import quantifications with transcriptome metadata
   signature      Print the transcriptome signature of a quant or index
   link           Register a transcriptome and write its linked document
   load-link      Register a transcriptome from a linked document
   export-link    Write the linked document for a registered signature
   list           List registered transcriptomes
   clear          Remove cache entries for one signature
   clear-all      Remove every cache entry

'''

DESCRIPTION = 'Transcriptome provenance for quantification results'


def build_parser():
    parser = argparse.ArgumentParser(description=DESCRIPTION)
    parser.add_argument('--version',
        action='version',
        version=__version__,
        default=__version__,
    )

    subparser = parser.add_subparsers(help='Sub-command help', dest='subcommand')

    ''' Parser for import '''
    import_parser = subparser.add_parser('import',
        description='''Import quantifications with transcriptome metadata''',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    cli_quant.ImportOptions.add_arguments(import_parser)
    import_parser.set_defaults(func=cli_quant.run)

    _commands = [
        ('signature', cli_registry.SignatureOptions, cli_registry.signature),
        ('link', cli_registry.LinkOptions, cli_registry.link),
        ('load-link', cli_registry.LoadLinkOptions, cli_registry.load_link),
        ('export-link', cli_registry.ExportLinkOptions, cli_registry.export_link),
        ('list', cli_registry.ListOptions, cli_registry.list_registry),
        ('clear', cli_registry.ClearOptions, cli_registry.clear),
        ('clear-all', cli_registry.ClearAllOptions, cli_registry.clear_all),
    ]
    for name, option_class, func in _commands:
        _parser = subparser.add_parser(name,
            description=func.__doc__,
            formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        )
        option_class.add_arguments(_parser)
        _parser.set_defaults(func=func)
    return parser


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        empty_parser = argparse.ArgumentParser(description=DESCRIPTION, usage=USAGE)
        empty_parser.print_help(sys.stderr)
        sys.exit(1)

    args = build_parser().parse_args(argv)
    args.func(args)

if __name__ == '__main__':
    main()
