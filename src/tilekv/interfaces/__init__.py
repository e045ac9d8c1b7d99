"""Protocol definitions for the seams between the layers."""
