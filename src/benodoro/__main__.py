"""Entry point for ``python -m benodoro``."""

from benodoro.cli.main import app

app()
