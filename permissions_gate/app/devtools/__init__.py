"""
Dev tools state: the evaluation recorder and context overrides.
"""
