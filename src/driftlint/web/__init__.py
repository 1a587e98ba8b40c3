"""HTTP surface used by editor integrations."""
