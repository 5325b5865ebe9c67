"""Domain layer: entities, value objects, services and exceptions."""
