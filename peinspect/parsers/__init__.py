"""Address spaces, the header loader, and data directory extractors."""
