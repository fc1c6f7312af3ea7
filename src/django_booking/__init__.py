"""Session booking engine for children's activity programs, packaged as reusable Django apps."""

__version__ = "0.1.0"
