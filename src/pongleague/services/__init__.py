"""League services: match lifecycle and tournaments, built on the rating engine."""
