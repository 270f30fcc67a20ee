"""HTTP surface: shared dependencies and the root router."""
