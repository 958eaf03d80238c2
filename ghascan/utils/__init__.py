"""
utils package for ghascan - GitHub Actions Scanner
"""
