"""Core abstractions: models, errors, adapter interface and registry."""
