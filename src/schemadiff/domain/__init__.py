"""Domain layer: schema entities and pure schema services."""
