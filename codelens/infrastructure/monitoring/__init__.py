"""Logging setup and the in-process domain event bus."""
