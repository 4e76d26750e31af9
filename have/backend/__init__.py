"""Go code generation."""
