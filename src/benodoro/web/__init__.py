"""HTTP control surface of the app process."""
