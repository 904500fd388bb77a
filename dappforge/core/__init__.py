"""Core engine: fetch, extract, build, package, and the graph that orders them."""
