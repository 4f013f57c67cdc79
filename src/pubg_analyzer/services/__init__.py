"""Analysis services and the command line entry point."""
