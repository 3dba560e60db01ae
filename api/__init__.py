"""HTTP surface for the consultation engine."""
