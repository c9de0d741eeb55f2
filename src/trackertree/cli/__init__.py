"""TrackerTree command line interface."""
