"""Project-wide constants shared by the service and its tooling."""

VERSION = "0.1.0"
