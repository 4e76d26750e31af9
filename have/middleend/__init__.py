"""Middle end: dependency tracking, generic instantiation and type negotiation."""
