"""I/O layer: database loading."""
