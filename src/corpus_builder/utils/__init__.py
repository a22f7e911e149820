"""Small helpers shared across loaders."""
