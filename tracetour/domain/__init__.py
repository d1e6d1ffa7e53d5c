"""Domain entities and the repository ports the use cases depend on."""
