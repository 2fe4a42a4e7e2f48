"""Pure, dependency-free helpers shared by the host and the plugins."""
