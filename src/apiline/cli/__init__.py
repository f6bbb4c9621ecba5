from __future__ import annotations

from apiline.cli.commands import main
from apiline.cli.session import InteractiveSession

__all__ = ["main", "InteractiveSession"]
