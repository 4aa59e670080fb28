"""Secret resolution, credential persistence and redaction."""
