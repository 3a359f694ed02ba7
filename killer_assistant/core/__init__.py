"""
Core modules for Killer Assistant.

This package contains balance bookkeeping, action pricing, the fixed
assistant instruction and the speech-language heuristic.
"""
