"""Session relay between a live call, the realtime model and the observer UI."""
