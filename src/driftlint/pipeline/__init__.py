"""Change detection and debounced scheduling of analysis cycles."""
