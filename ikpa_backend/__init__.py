"""IKPA backend services."""
