"""Abstract interfaces for the external collaborators."""
