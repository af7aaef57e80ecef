"""
solflame - gas flame graphs for Solidity transactions
"""

__version__ = "0.1.0"
