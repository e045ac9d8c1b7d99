"""Building blocks of the sorted table store."""
