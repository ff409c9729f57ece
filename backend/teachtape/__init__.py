"""TeachTape booking and payment core."""
