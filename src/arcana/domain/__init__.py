"""Domain models for stories, players and mechanics."""
