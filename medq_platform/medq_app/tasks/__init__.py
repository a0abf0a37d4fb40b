"""Background dispatch for pipeline events."""
