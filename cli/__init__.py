"""Terminal host for the TDS telemetry dashboard."""

# The Typer instance is ``cli.app.app``; it is not re-exported here so that
# ``cli.app`` keeps resolving to the module, which tests patch attributes on.

__all__: list[str] = []
