"""Strategy, risk and execution services."""
