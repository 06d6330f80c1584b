"""Core services: persistence, locking, validation, and configuration guard."""
