"""
S5 Commander - offloads local files to S3-compatible storage via s5cmd.
"""

__version__ = "1.0.0"
