"""Read-only surfaces for reporting clients."""
