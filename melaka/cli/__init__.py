# melaka/cli/__init__.py
"""Melaka 命令行界面。"""

from melaka.cli.main import app

__all__ = ["app"]
