"""Background workers for patternlife."""
