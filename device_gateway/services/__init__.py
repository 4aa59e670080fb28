"""Gateway services: tokens, retries, rate limits, normalization, dispatch."""
