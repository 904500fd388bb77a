"""dappforge CLI — Typer-based command-line interface.

Provides the ``dappforge`` command. Positional arguments are build targets
(registered stage names or the reserved words ``clean``, ``distclean``,
``package``, ``check`` and ``all``) executed left to right.

All output uses Rich for formatted terminal display.
"""
