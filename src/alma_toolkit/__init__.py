"""
The Alma Toolkit: bulk operations against the Ex Libris Alma API
"""

__version__ = "0.1.0"
