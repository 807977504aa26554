"""Domain layer - library model and playback integration."""
