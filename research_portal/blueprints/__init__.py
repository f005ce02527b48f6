"""Blueprints of the research portal."""
