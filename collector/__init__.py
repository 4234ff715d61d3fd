"""linkbridge collector: pairs with the backend and harvests session artifacts."""

__version__ = "0.1.0"
