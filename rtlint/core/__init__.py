"""
rtlint.core: shared primitives used across the front end and the checker.

Modules:
  - span: source locations
  - diagnostics: Diagnostic record + JSON rendering
  - errors: exception hierarchy
  - safety: SafetyTag and the annotation marker vocabulary
"""

__all__ = [
	"span",
	"diagnostics",
	"errors",
	"safety",
]
