"""
CLI Commands.

Organized by domain/feature area.
"""

from notestore.cli.commands.db import app as db_app
from notestore.cli.commands.search import app as search_app
from notestore.cli.commands.settings import app as settings_app
from notestore.cli.commands.trash import app as trash_app

__all__ = [
    "db_app",
    "search_app",
    "settings_app",
    "trash_app",
]
