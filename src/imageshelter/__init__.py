"""ImageShelter - minimal file hosting with per-upload encryption keys."""

__version__ = "1.0.0"
