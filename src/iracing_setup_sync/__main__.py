"""Allow running the agent with ``python -m iracing_setup_sync``."""

from iracing_setup_sync.cli import app

app()
