"""Guest and staff notifications triggered by booking events."""
