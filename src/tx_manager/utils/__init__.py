"""Small shared helpers: clocks and identifiers."""
