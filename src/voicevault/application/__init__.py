"""Application layer: services, background tasks, playback and event channels."""
