"""plotmatch — concurrent land-matching lookup with a two-tier plot cache."""
