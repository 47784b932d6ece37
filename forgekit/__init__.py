"""forgekit: project generation from versioned blueprints."""

__version__ = "0.1.0"
