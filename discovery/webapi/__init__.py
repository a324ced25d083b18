"""FastAPI surface for the discovery services."""
