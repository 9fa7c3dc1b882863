# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
rtlint: realtime-safety checker for annotated call graphs.

Pipeline:
  parser:      source text -> parser AST (lark grammar + terminator post-lexer)
  ast_to_hir:  parser AST -> HIR (items, bodies, lets, calls)
  decl_table:  HIR items -> declaration identities, tags, impl/trait index
  checker:     HIR bodies -> realtime-calls-non-realtime diagnostics
  driver:      CLI / programmatic entry points
"""

__version__ = "0.3.0"

__all__ = ["core", "parser", "checker", "driver", "__version__"]
