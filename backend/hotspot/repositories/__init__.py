"""Entity access functions, one module per table."""
