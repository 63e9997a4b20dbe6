"""Spendwise: selection state and cache invalidation core for a finance tracker."""

__version__ = "0.1.0"
