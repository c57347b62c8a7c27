"""Speaker-embedding extraction for NeMo-style speaker verification models."""
