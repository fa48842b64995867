"""sqls-next CLI package.

    from sqls_next.cli import main
"""

from sqls_next.cli.main import main

__all__ = ["main"]
