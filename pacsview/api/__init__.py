"""HTTP API for PACSView."""
