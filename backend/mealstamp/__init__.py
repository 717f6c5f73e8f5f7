"""MealStamp - AI food analysis and coaching backend."""

__version__ = "1.0.0"
