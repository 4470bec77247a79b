"""
files-control

File-storage control plane: upload commits, access control, download grants,
cross-backend transfers and expiration sweeps.
"""

__version__ = "0.1.0"
