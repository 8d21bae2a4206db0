"""Core services: configuration, logging, events, agent registry and model cards."""
