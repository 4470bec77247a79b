"""
Infrastructure Layer

Redis persistence, storage backends and HTTP fetching.
"""
