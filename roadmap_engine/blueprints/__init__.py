"""
Roadmap Engine
Blueprint registry.
"""
