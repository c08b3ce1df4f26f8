"""Domain layer: entities, ports, exceptions and pure value helpers."""
