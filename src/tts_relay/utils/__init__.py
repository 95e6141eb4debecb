"""
Utility Modules.

    - timeit.py: Stage timing context manager
    - text.py: Log previews and file-name sanitizing
"""
