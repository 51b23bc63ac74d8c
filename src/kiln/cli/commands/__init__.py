"""Click commands registered on the ``kiln`` group."""
