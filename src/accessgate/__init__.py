"""accessgate - identity and access resolution."""
