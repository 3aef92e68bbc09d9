"""Infrastructure services shared by the scheduling components."""
