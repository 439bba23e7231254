"""
AtlasDex Swap Migrations
========================

Scripts for deploying and upgrading the AtlasDex swap contracts.

Structure:
- networks: Per-network deployment targets
- provider: Web3 connection and contract deployment
- sequencer: Ordered deploy / setup / proxy / upgrade steps
- records: Deployed address bookkeeping
- deploy: Command line entry point
"""

__version__ = "1.0.0"
__author__ = "AtlasDex Team"
