"""repo-fleet: workflow automation across a fleet of local git repositories."""

__version__ = "0.4.0"
