"""Image source ingestion."""

from ingestion.file_handler import FileHandler, load_image_bytes

__all__ = [
    'FileHandler',
    'load_image_bytes'
]
