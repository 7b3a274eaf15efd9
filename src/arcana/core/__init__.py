"""Core primitives shared by every layer."""
