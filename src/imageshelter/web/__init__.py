"""Web layer for ImageShelter (FastAPI app, routers, middleware)."""
