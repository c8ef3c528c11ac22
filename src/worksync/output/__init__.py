"""Output renderers — rich terminal and JSON."""
