"""Infrastructure layer: persistence, integrations, audio and observability."""
