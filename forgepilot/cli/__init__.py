"""Command line interfaces for Forge Pilot."""
