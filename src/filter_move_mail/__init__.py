"""Rule-based email sorting: match messages against ordered rules and move them."""

__version__ = "1.0.0"
