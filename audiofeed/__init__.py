"""Personal audio feed built from videos and articles."""
