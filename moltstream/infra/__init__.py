"""Process-level infrastructure (device identity)."""
