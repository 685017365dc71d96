"""
Command line entry point for qmdlsp.

The server speaks LSP for markdown and Quarto documents (``.md``, ``.qmd``,
``.Rmd``) and hands each embedded code or math block to its own language's
tooling through virtual documents.

Usage
-----
    qmdlsp                          # stdio, the way editors launch it
    qmdlsp --tcp 2087               # TCP on localhost, for debugging a client
    qmdlsp --tempfile-dir .vdoc     # where r/julia virtual documents are written
    qmdlsp --list-languages         # embedded languages and how they are served
"""
from __future__ import annotations

import argparse
import logging
import sys

_EPILOG = """\
Project settings are read from .qmdlsp.toml in the workspace root; client
settings under the "qmdlsp" key override them.  Clients fetch virtual documents
with the workspace commands qmdlsp.getVirtualDoc and qmdlsp.getVirtualDocContent.
"""

_LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog='qmdlsp',
        description=(
            'Language server for markdown and Quarto documents. Code cells and '
            'display math are projected into virtual documents for their own '
            'language servers.'
        ),
        epilog=_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    transport = p.add_mutually_exclusive_group()
    transport.add_argument(
        '--stdio',
        action='store_true',
        help='Talk LSP over stdin/stdout (the default)',
    )
    transport.add_argument(
        '--tcp',
        metavar='PORT',
        type=int,
        help='Serve a single client on 127.0.0.1:PORT instead of stdio',
    )
    p.add_argument(
        '--tempfile-dir',
        metavar='DIR',
        help='Directory for temp-file virtual documents '
             '(default: <system temp>/qmdlsp; tempfile_dir in .qmdlsp.toml wins)',
    )
    p.add_argument(
        '--log-level',
        metavar='LEVEL',
        type=str.upper,
        default='WARNING',
        choices=_LOG_LEVELS,
        help='Verbosity of the log written to stderr (default: WARNING)',
    )
    p.add_argument(
        '--list-languages',
        action='store_true',
        help='Print the embedded languages, their file extension and strategy, then exit',
    )
    p.add_argument(
        '--version',
        action='version',
        version=_version_string(),
    )
    return p


def _version_string() -> str:
    from qmdlsp import __version__
    return f'qmdlsp {__version__}'


def _print_languages(out=None) -> None:
    from qmdlsp.languages import default_registry
    out = out or sys.stdout
    for language in default_registry:
        aliases = ', '.join(language.ids)
        print(f'{aliases:<28} .{language.extension:<6} {language.strategy.value}', file=out)


def qmdlsp(argv: list[str] | None = None) -> None:
    """Entry point for the ``qmdlsp`` command."""
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(levelname)s %(name)s: %(message)s',
        stream=sys.stderr,
    )

    if args.list_languages:
        _print_languages()
        return

    from qmdlsp import server as server_module

    if args.tempfile_dir:
        server_module.set_default_tempfile_dir(args.tempfile_dir)

    if args.tcp is not None:
        server_module.server.start_tcp('127.0.0.1', args.tcp)
    else:
        server_module.server.start_io()


if __name__ == '__main__':
    qmdlsp()
