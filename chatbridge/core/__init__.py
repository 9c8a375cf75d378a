"""Core infrastructure for chatbridge: configuration, logging, errors."""
