"""Core modules for pkgsync."""
