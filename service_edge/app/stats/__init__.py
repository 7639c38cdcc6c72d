"""Usage counters and fleet aggregation."""
