"""
featurewarden - Verify features against their acceptance criteria.

A CLI and library for:
- Detecting a project's test, lint, typecheck, build and e2e commands
  (cached in memory and in ai/capabilities.json)
- Finding the tests relevant to a feature's changes
- Running automated checks and judging acceptance criteria, by tests
  (TDD mode) or by an AI agent
- Keeping an append-only history of verification runs in ai/verification/
"""

__version__ = "0.1.0"
