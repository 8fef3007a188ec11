"""
Landing-page backend brokering SimplyBook.me scheduling and Facebook conversion reporting.
"""

__version__ = "1.0.0"
