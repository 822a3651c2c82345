"""MyEdge portfolio backend."""
