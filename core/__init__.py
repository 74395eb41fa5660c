"""Core modules for the passport MRZ reader (settings, logging, errors, cancellation)."""
