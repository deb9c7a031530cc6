"""Infrastructure shared by the persistence core (logging)."""
