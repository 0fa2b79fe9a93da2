"""
Voting ledger.

One vote per (election, voter), guaranteed by a storage-level unique
constraint. Each vote carries a SHA-256 fingerprint returned to the voter as
a receipt. Votes are never deleted; disputed votes are soft-invalidated and
excluded from tabulation.
"""
