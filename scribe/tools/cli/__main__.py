"""
Entry point of `scribe` CLI, invoked as `python -m scribe.tools.cli`.
"""

from .main import run

run()
